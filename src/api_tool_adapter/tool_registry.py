"""Immutable registry of compiled tools, resources and prompts."""

from __future__ import annotations

import difflib
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .models import OPENAPI_KIND, PromptInfo, ResourceInfo, ServerInfo, ToolInfo
from .naming import sanitize_tool_name


logger = logging.getLogger(__name__)


class ToolRegistry:
    """Built once per configuration and never mutated afterwards."""

    def __init__(
        self,
        server_info: ServerInfo,
        base_url: str = "",
        tools: Iterable[ToolInfo] = (),
        resources: Iterable[ResourceInfo] = (),
        prompts: Iterable[PromptInfo] = (),
        kind: str = OPENAPI_KIND,
        default_path_parameters: Optional[Mapping[str, str]] = None,
        server_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.server_info = server_info
        self.base_url = base_url
        self.kind = kind
        self.default_path_parameters = MappingProxyType(dict(default_path_parameters or {}))
        self.server_headers = MappingProxyType(dict(server_headers or {}))

        tool_map: Dict[str, ToolInfo] = {}
        for tool in tools:
            if tool.name in tool_map:
                logger.warning("Tool %s registered twice; keeping the later definition", tool.name)
            tool_map[tool.name] = tool
        self._tools = MappingProxyType(tool_map)
        self._resources = MappingProxyType({r.name: r for r in resources})
        self._prompts = MappingProxyType({p.name: p for p in prompts})

    @classmethod
    def empty(cls, server_info: ServerInfo, kind: str = OPENAPI_KIND) -> "ToolRegistry":
        return cls(server_info=server_info, kind=kind)

    @property
    def tools(self) -> Mapping[str, ToolInfo]:
        return self._tools

    @property
    def resources(self) -> Mapping[str, ResourceInfo]:
        return self._resources

    @property
    def prompts(self) -> Mapping[str, PromptInfo]:
        return self._prompts

    def list_tools(self) -> List[ToolInfo]:
        return list(self._tools.values())

    def get(self, name: str) -> Optional[ToolInfo]:
        """Exact lookup, then the same name with the server prefix added."""
        tool = self._tools.get(name)
        if tool is not None:
            return tool
        prefixed = sanitize_tool_name(name, self.server_info.name)
        tool = self._tools.get(prefixed)
        if tool is not None:
            logger.debug("Resolved tool %s through server prefix as %s", name, prefixed)
        return tool

    def suggest(self, name: str) -> Optional[str]:
        matches = difflib.get_close_matches(
            sanitize_tool_name(name, self.server_info.name), list(self._tools), n=1
        )
        return matches[0] if matches else None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._tools)
