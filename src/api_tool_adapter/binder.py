"""Binding of tool-call arguments onto concrete HTTP request fields."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qsl, quote

from .errors import MissingParametersError, ParameterConversionError
from .logging import REDACTED, redact_headers
from .models import Parameter, PreparedRequest, ToolInfo


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "OpenAPI-MCP/1.0"

_TRUTHY = {"true", "1", "yes", "y"}
_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
# Characters left intact in substituted path segments.
_PATH_SAFE = "/:@!$&'()*+,;="


class TokenSource(Protocol):
    def get_access_token(self) -> Awaitable[str]: ...


def parse_kwargs_string(text: str) -> Dict[str, Any]:
    """Recover an argument map from a loosely formatted string.

    Strategies, first success wins: JSON, JSON after unescaping quotes,
    JSON after unescaping backslashes, JSON after both, the first ``{...}``
    substring, a ``a=1&b=2`` query string, and finally ``a=1,b=2`` pairs.
    Returns an empty dict when nothing matches.
    """
    cleaned = _strip_wrappers(text)
    if not cleaned:
        return {}

    candidates = [
        ("json", cleaned),
        ("unescaped quotes", cleaned.replace('\\"', '"')),
        ("unescaped backslashes", cleaned.replace("\\\\", "\\")),
        ("unescaped quotes and backslashes", cleaned.replace("\\\\", "\\").replace('\\"', '"')),
    ]
    for label, candidate in candidates:
        parsed = _load_json_object(candidate)
        if parsed is not None:
            logger.debug("Parsed kwargs string as %s", label)
            return parsed

    match = _JSON_OBJECT.search(cleaned)
    if match:
        parsed = _load_json_object(match.group(0))
        if parsed is not None:
            logger.debug("Parsed kwargs string from embedded JSON object")
            return parsed

    if "=" in cleaned and ("&" in cleaned or "," not in cleaned):
        pairs = parse_qsl(cleaned, keep_blank_values=True)
        if pairs:
            logger.debug("Parsed kwargs string as query string")
            return _collect_pairs(pairs)

    if "=" in cleaned:
        result: Dict[str, Any] = {}
        for part in cleaned.split(","):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            key = key.strip()
            if key:
                result[key] = _convert_number(value.strip().strip("'\""))
        if result:
            logger.debug("Parsed kwargs string with comma-split pairs")
            return result

    logger.warning("Could not parse kwargs string: %r", text[:200])
    return {}


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUTHY


def coerce_value(value: Any, schema_type: str, item_type: Optional[str] = None) -> Any:
    """Convert ``value`` to ``schema_type``; raises ``ValueError`` when impossible."""
    if value is None:
        return None
    if schema_type == "integer":
        if isinstance(value, bool):
            raise ValueError(f"expected integer, got boolean {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            raise ValueError(f"expected integer, got {value!r}")
        return int(str(value).strip())
    if schema_type == "number":
        if isinstance(value, bool):
            raise ValueError(f"expected number, got boolean {value!r}")
        if isinstance(value, (int, float)):
            return value
        return float(str(value).strip())
    if schema_type == "boolean":
        return parse_bool(value)
    if schema_type == "array":
        if isinstance(value, str):
            loaded = _try_json(value)
            value = loaded if isinstance(loaded, list) else [value]
        elif not isinstance(value, (list, tuple)):
            value = [value]
        if item_type in {"integer", "number", "boolean"}:
            return [coerce_value(item, item_type) for item in value]
        return list(value)
    if schema_type == "object":
        if isinstance(value, str):
            loaded = _try_json(value)
            if isinstance(loaded, (dict, list)):
                return loaded
            raise ValueError("expected a JSON object")
        return value
    return value


def build_url(
    base_url: str,
    template: str,
    default_path_parameters: Optional[Mapping[str, Any]] = None,
    path_values: Optional[Mapping[str, Any]] = None,
) -> str:
    """Substitute defaults first, then call values.

    Values keep their slashes; characters outside the path-segment set, such
    as ``?``, ``#``, ``%`` and spaces, are percent-encoded.
    """
    path = template
    for name, value in (default_path_parameters or {}).items():
        path = path.replace(f"{{{name}}}", quote(str(value), safe=_PATH_SAFE))
    for name, value in (path_values or {}).items():
        path = path.replace(f"{{{name}}}", quote(str(value), safe=_PATH_SAFE))
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class RequestBinder:
    def __init__(
        self,
        base_url: str,
        default_path_parameters: Optional[Mapping[str, str]] = None,
        server_headers: Optional[Mapping[str, str]] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        token_source: Optional[TokenSource] = None,
    ) -> None:
        self.base_url = base_url
        self.default_path_parameters = dict(default_path_parameters or {})
        self.server_headers = dict(server_headers or {})
        self.user_agent = user_agent
        self.token_source = token_source

    async def bind(self, tool: ToolInfo, arguments: Optional[Mapping[str, Any]]) -> PreparedRequest:
        args = self._collect(arguments or {})

        dry_run = False
        if tool.parameter("dry_run") is None and "dry_run" in args:
            dry_run = parse_bool(args.pop("dry_run"))

        missing = [
            p.name for p in tool.parameters if p.required and args.get(p.name) is None
        ]
        if missing:
            raise MissingParametersError(missing)

        values = self._coerce(tool.parameters, args)
        unknown = set(args) - {p.name for p in tool.parameters}
        if unknown:
            logger.debug("Ignoring undeclared arguments for %s: %s", tool.name, sorted(unknown))

        path_values: Dict[str, Any] = {}
        params: List[Tuple[str, str]] = []
        headers: Dict[str, str] = dict(self.server_headers)
        body: Any = None

        for parameter in tool.parameters:
            if parameter.name not in values:
                continue
            value = values[parameter.name]
            if parameter.location == "path":
                path_values[parameter.name] = _render(value)
            elif parameter.location == "query":
                items = value if isinstance(value, list) else [value]
                params.extend((parameter.name, _render(item)) for item in items)
            elif parameter.location == "header":
                headers[parameter.name] = _render(value)
            elif parameter.location == "body":
                body = value

        await self._finalize_headers(headers, dry_run)
        prepared = PreparedRequest(
            url=build_url(self.base_url, tool.url, self.default_path_parameters, path_values),
            method=tool.method.upper(),
            params=params,
            headers=headers,
            body=body,
            content_type=tool.content_type,
            dry_run=dry_run,
        )
        logger.debug(
            "Bound %s to %s %s headers=%s",
            tool.name,
            prepared.method,
            prepared.url,
            redact_headers(headers),
        )
        return prepared

    def _collect(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        args = dict(arguments)
        raw = args.get("kwargs")
        if isinstance(raw, str):
            args.pop("kwargs")
            args = {**parse_kwargs_string(raw), **args}
        elif isinstance(raw, dict):
            args.pop("kwargs")
            args = {**raw, **args}
        return args

    def _coerce(self, parameters: Tuple[Parameter, ...], args: Dict[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for parameter in parameters:
            if args.get(parameter.name) is None:
                continue
            item_type = None
            if parameter.schema is not None and parameter.schema.items is not None:
                item_type = parameter.schema.items.type
            try:
                values[parameter.name] = coerce_value(
                    args[parameter.name], parameter.schema_type, item_type
                )
            except (TypeError, ValueError) as exc:
                errors[parameter.name] = str(exc)
        if errors:
            raise ParameterConversionError(errors)
        return values

    async def _finalize_headers(self, headers: Dict[str, str], dry_run: bool = False) -> None:
        if self.token_source is not None and dry_run:
            # No token round trip for a request that is never sent.
            headers["Authorization"] = f"Bearer {REDACTED}"
        elif self.token_source is not None:
            token = await self.token_source.get_access_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        if not any(key.lower() == "user-agent" for key in headers):
            headers["User-Agent"] = self.user_agent


def _strip_wrappers(text: str) -> str:
    cleaned = text.strip()
    fenced = _FENCE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    while len(cleaned) >= 2 and cleaned.startswith("`") and cleaned.endswith("`"):
        cleaned = cleaned[1:-1].strip()
    if cleaned.startswith("?"):
        cleaned = cleaned[1:]
    return cleaned


def _load_json_object(candidate: str) -> Optional[Dict[str, Any]]:
    loaded = _try_json(candidate)
    return loaded if isinstance(loaded, dict) else None


def _try_json(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None


def _collect_pairs(pairs: List[Tuple[str, str]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            existing = result[key]
            result[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            result[key] = value
    return result


def _convert_number(value: str) -> Any:
    if not _NUMBER.match(value):
        return value
    number = float(value)
    if number.is_integer():
        return int(number)
    return number


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)
