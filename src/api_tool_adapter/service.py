"""Tool invocation boundary: bind, execute and format results."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .auth import AuthenticatorRegistry, OAuth2ClientCredentialsAuthenticator
from .binder import RequestBinder
from .config import AuthConfig, Settings
from .errors import (
    METHOD_NOT_FOUND,
    AdapterError,
    ExecutionError,
    MissingParametersError,
    ParameterConversionError,
)
from .executors import ExecutionResult, HttpExecutor
from .logging import redact_payload
from .models import ToolInfo
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class AdapterService:
    """
    Executes compiled tools on behalf of the protocol layer.

    Missing parameters come back as a help result rather than an error,
    conversion failures as ``-32602``, remote and transport failures as
    ``-32603``. Authentication failures propagate to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        tool_registry: ToolRegistry,
        executor: HttpExecutor,
        binder: RequestBinder,
    ) -> None:
        self.settings = settings
        self.tool_registry = tool_registry
        self.executor = executor
        self.binder = binder
        self.semaphore = asyncio.Semaphore(settings.adapter_max_concurrency)

    def list_tools(self) -> List[ToolInfo]:
        return self.tool_registry.list_tools()

    async def aclose(self) -> None:
        await self.executor.aclose()

    async def invoke(
        self, tool_name: str, arguments: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        tool = self.tool_registry.get(tool_name)
        if tool is None:
            return self._format_unknown_tool(tool_name)
        return await self.execute_tool(tool, arguments or {})

    async def execute_tool(self, tool: ToolInfo, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        async with self.semaphore:
            logger.info("Executing tool=%s payload=%s", tool.name, redact_payload(arguments))

            try:
                prepared = await self.binder.bind(tool, arguments)
            except MissingParametersError as exc:
                logger.info("Tool %s called without %s", tool.name, exc.missing)
                return self._format_help(tool, exc)
            except ParameterConversionError as exc:
                logger.warning("Tool %s argument conversion failed: %s", tool.name, exc)
                return self._format_error(exc)

            if prepared.dry_run:
                return {"dry_run": True, "request": prepared.describe()}

            try:
                result = await self.executor.execute(prepared)
            except ExecutionError as exc:
                logger.error("Tool execution failed: tool=%s error=%s", tool.name, exc)
                return self._format_error(exc)

            return self._format_result(result)

    def _format_result(self, result: ExecutionResult) -> Dict[str, Any]:
        if result.is_json:
            item: Dict[str, Any] = {"type": "json", "json": result.data}
        else:
            item = {"type": "text", "text": result.data}
        return {"content": [item], "status_code": result.status_code}

    def _format_help(self, tool: ToolInfo, error: MissingParametersError) -> Dict[str, Any]:
        message = str(error)
        return {
            "content": [{"type": "text", "text": message}],
            "help": f"{message}. Expected input for {tool.name}: "
            f"{sorted(tool.metadata.input_schema.get('properties', {}))}",
            "missing_parameters": error.missing,
        }

    def _format_error(self, error: AdapterError) -> Dict[str, Any]:
        return {
            "content": [{"type": "text", "text": str(error)}],
            "is_error": True,
            "error": error.to_error(),
        }

    def _format_unknown_tool(self, tool_name: str) -> Dict[str, Any]:
        message = f"Tool '{tool_name}' not found."
        suggestion = self.tool_registry.suggest(tool_name)
        if suggestion:
            message += f" Did you mean '{suggestion}'?"
        return {
            "content": [{"type": "text", "text": message}],
            "is_error": True,
            "error": {"code": METHOD_NOT_FOUND, "message": message},
        }


def create_service(
    settings: Settings,
    registry: ToolRegistry,
    authentication: Optional[AuthConfig] = None,
    auth_registry: Optional[AuthenticatorRegistry] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AdapterService:
    """Wire binder, executor and authenticators for ``registry``."""
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.adapter_http_timeout_seconds)

    authenticator = None
    if authentication is not None:
        authenticator = (auth_registry or AuthenticatorRegistry.default()).create(authentication)
        logger.info("Using %s authentication", authentication.type)

    token_source = None
    if settings.has_oauth_source():
        token_source = OAuth2ClientCredentialsAuthenticator(
            token_url=settings.oauth_token_url or "",
            client_id=settings.oauth_client_id or "",
            client_secret=settings.oauth_client_secret or "",
            scope=settings.oauth_scope,
            client=client,
        )
        logger.info("Using OAuth client credentials from environment")

    binder = RequestBinder(
        base_url=registry.base_url,
        default_path_parameters=registry.default_path_parameters,
        server_headers=registry.server_headers,
        user_agent=settings.adapter_user_agent,
        token_source=token_source,
    )
    executor = HttpExecutor(client=client, authenticator=authenticator, close_client=owns_client)
    return AdapterService(settings, registry, executor, binder)
