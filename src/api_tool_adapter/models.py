"""Internal models for operations, compiled tools and prepared requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from .logging import redact_headers
from .schema import NormalizedSchema


ParameterLocation = Literal["path", "query", "header", "body"]

OPENAPI_KIND = "openapi"
DISCOVERY_KIND = "google_api"

DEFAULT_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class Parameter:
    name: str
    location: ParameterLocation
    required: bool = False
    schema: Optional[NormalizedSchema] = None
    description: str = ""
    content_type: Optional[str] = None

    @property
    def schema_type(self) -> str:
        return self.schema.type if self.schema else "string"


@dataclass(frozen=True)
class OperationInfo:
    operation_id: str
    summary: str
    path: str
    method: str
    parameters: Tuple[Parameter, ...] = ()
    response_schema: Optional[NormalizedSchema] = None
    tags: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ServerInfo:
    name: str
    description: str = ""


@dataclass(frozen=True)
class ToolMetadata:
    name: str
    description: str
    input_schema: Dict[str, Any]
    response_schema: Dict[str, Any]
    tags: Tuple[str, ...]
    server_info: ServerInfo

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "responseSchema": self.response_schema,
            "tags": list(self.tags),
            "serverInfo": {
                "name": self.server_info.name,
                "description": self.server_info.description,
            },
        }


@dataclass(frozen=True)
class ToolInfo:
    name: str
    url: str
    method: str
    content_type: str
    parameters: Tuple[Parameter, ...]
    metadata: ToolMetadata
    operation_id: str = ""

    @property
    def description(self) -> str:
        return self.metadata.description

    def parameter(self, name: str) -> Optional[Parameter]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None


@dataclass(frozen=True)
class ResourceInfo:
    name: str
    description: str
    schema: Dict[str, Any]
    tags: Tuple[str, ...] = ()

    @property
    def uri(self) -> str:
        return f"resource://schemas/{self.name}"


@dataclass(frozen=True)
class PromptInfo:
    name: str
    content: str
    description: str = ""


@dataclass
class PreparedRequest:
    """Call-scoped request description produced by the binder."""

    url: str
    method: str
    params: List[Tuple[str, str]] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    content_type: str = DEFAULT_CONTENT_TYPE
    dry_run: bool = False

    def describe(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "headers": redact_headers(self.headers),
            "params": [list(pair) for pair in self.params],
            "body": self.body,
        }
