"""MCP server setup for the API tool adapter."""

import json
import logging
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.prompts import Prompt
from fastmcp.resources import TextResource
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent
from pydantic import PrivateAttr
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from .admin_api import mount_admin_api
from .auth import AuthenticatorRegistry
from .compiler import build_registry
from .config import Settings, load_builder_config
from .models import PromptInfo, ResourceInfo, ToolInfo
from .openapi import DocumentLoader
from .service import AdapterService, create_service
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ApiTool(Tool):
    """FastMCP tool that forwards its arguments to ``AdapterService``."""

    _service: Any = PrivateAttr(default=None)

    @classmethod
    def from_tool_info(cls, tool: ToolInfo, service: AdapterService) -> "ApiTool":
        api_tool = cls(
            name=tool.name,
            description=tool.description,
            parameters=tool.metadata.input_schema,
            tags=set(tool.metadata.tags),
        )
        api_tool._service = service
        return api_tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        result = await self._service.invoke(self.name, arguments)
        if result.get("is_error"):
            raise ToolError(result["content"][0]["text"])
        return ToolResult(content=[TextContent(type="text", text=_render_result(result))])


async def build_server(settings: Settings) -> tuple[FastMCP, object | None, AdapterService]:
    if not settings.adapter_config_path:
        raise RuntimeError("ADAPTER_CONFIG_PATH must point to a build configuration file")

    config = load_builder_config(settings.adapter_config_path)
    loader = DocumentLoader(
        cache_seconds=settings.adapter_spec_cache_seconds,
        timeout_seconds=settings.adapter_http_timeout_seconds,
    )
    registry = await build_registry(config, loader)
    auth_registry = AuthenticatorRegistry.default()
    service = create_service(settings, registry, config.authentication, auth_registry)

    mcp = FastMCP(registry.server_info.name or settings.service_name, instructions=_instructions(registry))
    app = _get_http_app(mcp, settings)
    _attach_auth(app, settings)
    _attach_healthcheck(app, registry)
    if app:
        mount_admin_api(app, service, auth_registry, settings.adapter_auth_token)  # type: ignore[arg-type]

    register_registry(mcp, registry, service)
    return mcp, app, service


def register_registry(mcp: FastMCP, registry: ToolRegistry, service: AdapterService) -> None:
    for tool in registry.list_tools():
        mcp.add_tool(ApiTool.from_tool_info(tool, service))
        logger.info("Registered tool: %s", tool.name)
    for resource in registry.resources.values():
        mcp.add_resource(_to_resource(resource))
    for prompt in registry.prompts.values():
        mcp.add_prompt(_to_prompt(prompt))


def _to_resource(resource: ResourceInfo) -> TextResource:
    return TextResource(
        uri=resource.uri,
        name=resource.name,
        description=resource.description,
        text=json.dumps(resource.schema, indent=2),
        mime_type="application/json",
        tags=set(resource.tags),
    )


def _to_prompt(prompt: PromptInfo) -> Prompt:
    def render() -> str:
        return prompt.content

    return Prompt.from_function(render, name=prompt.name, description=prompt.description)


def _render_result(result: Dict[str, Any]) -> str:
    if result.get("dry_run") or "help" in result:
        return json.dumps(result, indent=2, default=str)
    item = result["content"][0]
    if item["type"] == "json":
        return json.dumps(item["json"], default=str)
    return item["text"]


def _attach_auth(app, settings: Settings) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return
    if not settings.adapter_auth_token:
        logger.warning("ADAPTER_AUTH_TOKEN not set; HTTP transport is unauthenticated")
        return

    async def auth_middleware(request, call_next):  # type: ignore[no-untyped-def]
        if request.method == "OPTIONS" or request.url.path.endswith("/health"):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        token = auth_header.replace("Bearer", "").strip()
        if token == settings.adapter_auth_token:
            return await call_next(request)
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    app.add_middleware(BaseHTTPMiddleware, dispatch=auth_middleware)


def _attach_healthcheck(app, registry: ToolRegistry) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        return JSONResponse(
            {"status": "ok", "server": registry.server_info.name, "tools": len(registry)}
        )

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions(registry: ToolRegistry) -> str:
    return (
        f"{registry.server_info.description} "
        f"Each tool calls one operation of {registry.base_url or 'the configured API'}."
    )


def _get_http_app(mcp: FastMCP, settings: Settings) -> Optional[Any]:
    transport = settings.adapter_transport.lower()
    if transport in {"http"}:
        app = mcp.http_app(transport="http", stateless_http=True, json_response=True)
        _attach_cors(app)
        return app
    if transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(
            transport="streamable-http", stateless_http=True, json_response=True
        )
        _attach_cors(app)
        return app
    if transport in {"sse"}:
        app = mcp.http_app(transport="sse")
        _attach_cors(app)
        return app
    return None


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
