"""Helpers that turn arbitrary identifiers into safe tool and resource names."""

from __future__ import annotations

import re
from typing import Optional


MAX_NAME_LENGTH = 50

_DISALLOWED = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_name(name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    sanitized = _DISALLOWED.sub("_", name)
    return sanitized[:max_length]


def sanitize_tool_name(name: str, server_prefix: Optional[str] = None) -> str:
    if server_prefix:
        return sanitize_name(f"{server_prefix}_{name}")
    return sanitize_name(name)


def fallback_operation_id(method: str, path: str) -> str:
    """Build ``{METHOD}_{lastPathSegment}`` for operations without an id."""
    segments = [segment for segment in path.split("/") if segment]
    last_segment = segments[-1] if segments else ""
    raw = f"{method.upper()}_{last_segment}"
    return raw.replace("{", "").replace("}", "")


def singularize_resource(resource: str) -> str:
    if resource.endswith("ies"):
        return resource[:-3] + "y"
    if resource.endswith("sses"):
        return resource
    if resource.endswith("s") and not resource.endswith("ss"):
        return resource[:-1]
    return resource
