"""API description loader and OpenAPI operation extractor."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
import yaml

from .errors import OperationRegistrationError, SpecLoadError
from .models import OperationInfo, Parameter, ServerInfo
from .naming import fallback_operation_id, sanitize_name
from .schema import NormalizedSchema, translate_openapi_schema


logger = logging.getLogger(__name__)

OPERATION_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

BODY_CONTENT_TYPES = (
    "application/json",
    "multipart/form-data",
    "application/x-www-form-urlencoded",
)

_SERVER_VARIABLE = re.compile(r"\{([^}]+)\}")


class DocumentLoader:
    """Fetches API descriptions from URLs or files, with a TTL cache."""

    def __init__(
        self,
        cache_seconds: int = 3600,
        timeout_seconds: float = 30,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def load(self, source: str) -> Dict[str, Any]:
        cached = self._cache.get(source)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        if _is_url(source):
            text = await self._fetch(source)
        else:
            text = self._read_file(source)

        data = parse_document(text, source)
        self._cache[source] = (time.time(), data)
        return data

    async def _fetch(self, url: str) -> str:
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise SpecLoadError(f"Failed to fetch API description {url}: {exc}") from exc

        if response.status_code != 200:
            raise SpecLoadError(
                f"Failed to fetch API description {url} ({response.status_code})"
            )
        return response.text

    def _read_file(self, source: str) -> str:
        path = Path(source.removeprefix("file://")).expanduser()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SpecLoadError(f"Failed to read API description {path}: {exc}") from exc


def parse_document(text: str, source: str = "<memory>") -> Dict[str, Any]:
    """Parse JSON, falling back to YAML."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SpecLoadError(f"API description {source} is neither JSON nor YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise SpecLoadError(f"API description {source} is not an object")
    return data


def resolve_server_info(
    document: Dict[str, Any], server_name: Optional[str], server_description: Optional[str]
) -> ServerInfo:
    info = document.get("info") or {}
    name = server_name or ""
    if not name or name.lower() == "openapi":
        name = info.get("title") or "openapi"
    description = server_description or info.get("description") or f"{name} MCP Server"
    return ServerInfo(name=name, description=description)


def determine_base_url(
    document: Dict[str, Any], spec_url: Optional[str] = None, configured: Optional[str] = None
) -> str:
    if configured:
        return configured

    servers = document.get("servers") or []
    server = servers[0] if servers and isinstance(servers[0], dict) else {}
    url = server.get("url")
    if url:
        url = _substitute_server_variables(url, server.get("variables") or {})
        if _is_url(url):
            return url
        if spec_url and _is_url(spec_url):
            return urljoin(spec_url, url)

    raise SpecLoadError("No base URL configured and none could be derived from the API description")


def extract_operations(document: Dict[str, Any]) -> Dict[str, OperationInfo]:
    """Walk every path and method; later duplicates of an id replace earlier ones."""
    operations: Dict[str, OperationInfo] = {}
    origins: Dict[str, str] = {}

    for path, path_item in (document.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        shared_parameters = path_item.get("parameters") or []

        for method in OPERATION_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            raw_id = operation.get("operationId") or fallback_operation_id(method, path)
            operation_id = sanitize_name(raw_id)
            try:
                info = _build_operation(operation_id, method, path, operation, shared_parameters)
            except Exception as exc:
                error = OperationRegistrationError(operation_id, str(exc))
                logger.error("%s", error, exc_info=True)
                continue

            origin = f"{method.upper()} {path}"
            if operation_id in operations:
                logger.warning(
                    "Operation id %s from %s replaces the one from %s",
                    operation_id,
                    origin,
                    origins[operation_id],
                )
            operations[operation_id] = info
            origins[operation_id] = origin

    logger.info("Extracted %s operations from OpenAPI document", len(operations))
    return operations


def _build_operation(
    operation_id: str,
    method: str,
    path: str,
    operation: Dict[str, Any],
    shared_parameters: List[Dict[str, Any]],
) -> OperationInfo:
    parameters = [
        _build_parameter(raw)
        for raw in _merge_parameters(shared_parameters, operation.get("parameters") or [])
        if raw.get("in") in {"path", "query", "header"}
    ]

    body = _build_body_parameter(operation.get("requestBody") or {})
    if body is not None:
        parameters.append(body)

    summary = operation.get("description") or operation.get("summary") or operation_id
    return OperationInfo(
        operation_id=operation_id,
        summary=summary,
        path=path,
        method=method.upper(),
        parameters=tuple(parameters),
        response_schema=_extract_response_schema(operation.get("responses") or {}),
        tags=frozenset(str(tag) for tag in operation.get("tags") or []),
    )


def _merge_parameters(
    shared: List[Dict[str, Any]], own: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for raw in [*shared, *own]:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        merged[(raw["name"], raw.get("in", ""))] = raw
    return list(merged.values())


def _build_parameter(raw: Dict[str, Any]) -> Parameter:
    location = raw["in"]
    description = raw.get("description") or ""
    schema = None
    if raw.get("schema") is not None:
        schema = translate_openapi_schema(raw["schema"], "string")
        if description and not schema.description:
            schema = schema.model_copy(update={"description": description})
    return Parameter(
        name=raw["name"],
        location=location,
        required=bool(raw.get("required", location == "path")),
        schema=schema,
        description=description,
    )


def _build_body_parameter(request_body: Dict[str, Any]) -> Optional[Parameter]:
    content = request_body.get("content") or {}
    for content_type in BODY_CONTENT_TYPES:
        media = content.get(content_type)
        if media is None:
            continue
        return Parameter(
            name="body",
            location="body",
            required=bool(request_body.get("required", False)),
            schema=translate_openapi_schema((media or {}).get("schema"), "object"),
            description=request_body.get("description") or "Request body",
            content_type=content_type,
        )
    return None


def _extract_response_schema(responses: Dict[str, Any]) -> NormalizedSchema:
    response = responses.get("200") or responses.get(200) or {}
    for media in (response.get("content") or {}).values():
        return translate_openapi_schema((media or {}).get("schema"), "object")
    return NormalizedSchema(type="object")


def _substitute_server_variables(url: str, variables: Dict[str, Any]) -> str:
    def replace(match: "re.Match[str]") -> str:
        variable = variables.get(match.group(1)) or {}
        return str(variable.get("default", match.group(0)))

    return _SERVER_VARIABLE.sub(replace, url)


def _is_url(value: str) -> bool:
    return urlparse(value).scheme in {"http", "https"}

