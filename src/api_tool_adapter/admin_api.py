"""Admin API for inspecting and trying out compiled tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from .auth import AuthenticatorRegistry
from .models import ToolInfo
from .service import AdapterService


logger = logging.getLogger(__name__)


class ExecuteRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)
    dry_run: Optional[bool] = Field(default=None, description="Resolve the request without sending it")


class ToolSummary(BaseModel):
    name: str
    description: str
    method: str
    path: str
    content_type: str
    tags: list[str]


def mount_admin_api(
    app,  # type: ignore[no-untyped-def]
    service: AdapterService,
    auth_registry: AuthenticatorRegistry,
    auth_token: Optional[str] = None,
) -> None:
    async def list_tools(request: Request) -> JSONResponse:
        _require_auth(request, auth_token)
        payload = [_to_summary(t).model_dump() for t in service.list_tools()]
        return JSONResponse(payload)

    async def get_tool(request: Request) -> JSONResponse:
        _require_auth(request, auth_token)
        tool = service.tool_registry.get(request.path_params["tool_name"])
        if not tool:
            return JSONResponse({"error": "Not found"}, status_code=404)
        detail = tool.metadata.to_dict()
        detail.update(_to_summary(tool).model_dump(include={"method", "path", "content_type"}))
        return JSONResponse(detail)

    async def list_authenticators(request: Request) -> JSONResponse:
        _require_auth(request, auth_token)
        return JSONResponse(auth_registry.list_available())

    async def execute_tool(request: Request) -> JSONResponse:
        """Execute a tool by name; ``dry_run`` returns the resolved request only."""
        _require_auth(request, auth_token)
        tool_name = request.path_params["tool_name"]
        tool = service.tool_registry.get(tool_name)
        if not tool:
            return JSONResponse({"error": f"Tool '{tool_name}' not found"}, status_code=404)

        try:
            payload = await request.json() if await request.body() else {}
            execute = ExecuteRequest(**payload)
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ValidationError):
                details: Any = exc.errors(include_url=False, include_context=False)
            else:
                details = str(exc)
            return JSONResponse({"error": "Invalid payload", "details": details}, status_code=422)

        arguments = dict(execute.arguments)
        if execute.dry_run is not None:
            arguments["dry_run"] = execute.dry_run

        result = await service.execute_tool(tool, arguments)
        return JSONResponse(
            {
                "success": not result.get("is_error", False),
                "tool": tool.name,
                "result": result,
            },
            status_code=200,
        )

    app.add_route("/admin/tools", list_tools, methods=["GET"])
    app.add_route("/admin/tools/{tool_name:str}", get_tool, methods=["GET"])
    app.add_route("/admin/tools/{tool_name:str}/execute", execute_tool, methods=["POST"])
    app.add_route("/admin/authenticators", list_authenticators, methods=["GET"])


def _require_auth(request: Request, auth_token: Optional[str]) -> None:
    if not auth_token:
        return
    token = request.headers.get("authorization", "").replace("Bearer", "").strip()
    if token != auth_token:
        raise HTTPException(status_code=401, detail="Unauthorized")


def _to_summary(tool: ToolInfo) -> ToolSummary:
    return ToolSummary(
        name=tool.name,
        description=tool.description,
        method=tool.method,
        path=tool.url,
        content_type=tool.content_type,
        tags=list(tool.metadata.tags),
    )
