"""Translation of provider schema nodes into a normalized JSON-Schema tree."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict


# A raw schema node exactly as the provider document spells it.
SourceSchema = Mapping[str, Any]

KNOWN_TYPES = frozenset({"string", "integer", "number", "boolean", "object", "array"})


class NormalizedSchema(BaseModel):
    """Provider-independent schema: only the keys tool callers care about."""

    model_config = ConfigDict(frozen=True)

    type: str = "object"
    description: Optional[str] = None
    properties: Optional[Dict[str, "NormalizedSchema"]] = None
    items: Optional["NormalizedSchema"] = None
    required: Optional[List[str]] = None
    enum: Optional[List[str]] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def translate_openapi_schema(
    schema: Optional[SourceSchema], default_type: str = "object"
) -> NormalizedSchema:
    """Translate an OpenAPI 3.0 schema object (refs already resolved)."""
    if not schema:
        return NormalizedSchema(type=default_type)

    if "allOf" in schema and "type" not in schema:
        return _translate_all_of(schema, default_type)
    for key in ("oneOf", "anyOf"):
        variants = schema.get(key)
        if variants and "type" not in schema:
            merged = dict(variants[0])
            if schema.get("description") and not merged.get("description"):
                merged["description"] = schema["description"]
            return translate_openapi_schema(merged, default_type)

    schema_type = _resolve_type(schema, default_type)
    fields: Dict[str, Any] = {"type": schema_type}

    if schema.get("description") is not None:
        fields["description"] = schema["description"]

    properties = schema.get("properties")
    if properties:
        fields["properties"] = {
            name: translate_openapi_schema(prop, "string") for name, prop in properties.items()
        }

    if schema.get("items") is not None:
        fields["items"] = translate_openapi_schema(schema["items"], "string")

    required = schema.get("required")
    if isinstance(required, list) and required:
        fields["required"] = [str(name) for name in required]

    enum = _stringify_enum(schema.get("enum"))
    if enum:
        fields["enum"] = enum

    return NormalizedSchema(**fields)


def translate_discovery_type(google_type: Optional[str]) -> str:
    lowered = (google_type or "string").lower()
    return lowered if lowered in KNOWN_TYPES else "string"


def translate_discovery_schema(
    schema: Optional[SourceSchema],
    schemas: Optional[Mapping[str, SourceSchema]] = None,
    default_type: str = "object",
) -> NormalizedSchema:
    """Translate a Discovery schema, following ``$ref`` names into ``schemas``."""
    if not schema:
        return NormalizedSchema(type=default_type)
    return _translate_discovery_node(schema, schemas or {}, frozenset(), default_type)


def _translate_discovery_node(
    node: SourceSchema,
    schemas: Mapping[str, SourceSchema],
    seen: FrozenSet[str],
    default_type: str,
) -> NormalizedSchema:
    ref = node.get("$ref")
    if ref:
        target = schemas.get(ref)
        if target is None or ref in seen:
            return NormalizedSchema(type="object", description=node.get("description"))
        return _translate_discovery_node(target, schemas, seen | {ref}, "object")

    if "type" in node:
        schema_type = translate_discovery_type(node.get("type"))
    elif node.get("properties"):
        schema_type = "object"
    elif node.get("items"):
        schema_type = "array"
    else:
        schema_type = default_type

    fields: Dict[str, Any] = {"type": schema_type}
    if node.get("description") is not None:
        fields["description"] = node["description"]

    properties = node.get("properties")
    if properties:
        fields["properties"] = {
            name: _translate_discovery_node(prop, schemas, seen, "string")
            for name, prop in properties.items()
        }

    if schema_type == "array" and node.get("items"):
        fields["items"] = _translate_discovery_node(node["items"], schemas, seen, "string")

    enum = _stringify_enum(node.get("enum"))
    if enum:
        fields["enum"] = enum

    return NormalizedSchema(**fields)


def _translate_all_of(schema: SourceSchema, default_type: str) -> NormalizedSchema:
    return translate_openapi_schema(_merge_all_of(schema), default_type)


def _merge_all_of(schema: SourceSchema) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for part in schema.get("allOf") or []:
        if "allOf" in part and "type" not in part:
            part = _merge_all_of(part)
        properties.update(part.get("properties") or {})
        required.extend(name for name in part.get("required") or [] if name not in required)
        for key, value in part.items():
            if key not in ("properties", "required") and key not in merged:
                merged[key] = value
    for key, value in schema.items():
        if key != "allOf":
            merged[key] = value
    if properties:
        merged["properties"] = {**properties, **(schema.get("properties") or {})}
        merged.setdefault("type", "object")
    if required:
        merged["required"] = required + [n for n in schema.get("required") or [] if n not in required]
    return merged


def _resolve_type(schema: SourceSchema, default_type: str) -> str:
    schema_type = schema.get("type")
    if isinstance(schema_type, str) and schema_type in KNOWN_TYPES:
        return schema_type
    if schema_type is None:
        if schema.get("properties"):
            return "object"
        if schema.get("items") is not None:
            return "array"
    return default_type


def _stringify_enum(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    result: List[str] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, bool):
            result.append("true" if value else "false")
        else:
            result.append(str(value))
    return result
