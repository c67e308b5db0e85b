"""Normalization of raw OpenAPI documents into a 3.0-shaped, ref-free tree."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import SpecLoadError


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def normalize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized copy of ``document``; the input is left untouched."""
    if not isinstance(document, dict):
        raise SpecLoadError("API description must be a JSON/YAML object")

    normalized = copy.deepcopy(document)
    if str(normalized.get("swagger", "")).startswith("2"):
        normalized = upconvert_swagger2(normalized)
    elif str(normalized.get("openapi", "")).startswith("3.1"):
        normalized = downconvert_openapi31(normalized)
    elif not str(normalized.get("openapi", "")).startswith("3"):
        raise SpecLoadError("Document is neither Swagger 2.0 nor OpenAPI 3.x")

    if not isinstance(normalized.get("paths"), dict):
        normalized["paths"] = {}
    return resolve_refs(normalized)


def upconvert_swagger2(document: Dict[str, Any]) -> Dict[str, Any]:
    logger.info("Converting Swagger 2.0 document to OpenAPI 3.0")
    converted: Dict[str, Any] = {
        "openapi": "3.0.3",
        "info": document.get("info") or {},
        "paths": {},
        "components": {"schemas": _rewrite_refs(document.get("definitions") or {})},
    }

    host = document.get("host")
    if host:
        scheme = (document.get("schemes") or ["https"])[0]
        converted["servers"] = [{"url": f"{scheme}://{host}{document.get('basePath', '')}"}]
    elif document.get("basePath"):
        converted["servers"] = [{"url": document["basePath"]}]

    global_consumes = document.get("consumes") or []
    for path, path_item in (document.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        new_item: Dict[str, Any] = {}
        for key, value in path_item.items():
            if key == "parameters":
                new_item[key] = [
                    _convert_swagger2_parameter(p) for p in value if p.get("in") not in {"body", "formData"}
                ]
            elif key in HTTP_METHODS and isinstance(value, dict):
                new_item[key] = _convert_swagger2_operation(value, global_consumes)
            else:
                new_item[key] = value
        converted["paths"][path] = new_item
    return converted


def downconvert_openapi31(document: Dict[str, Any]) -> Dict[str, Any]:
    logger.info("Converting OpenAPI 3.1 document to 3.0")
    document["openapi"] = "3.0.3"
    document.pop("webhooks", None)
    _walk_schemas(document)
    return document


def resolve_refs(document: Dict[str, Any]) -> Dict[str, Any]:
    """Inline every local ``$ref``; a reference cycle becomes ``{"type": "object"}``.

    A target that resolved without cutting a cycle is shared by every later
    occurrence of the same reference.
    """
    cache: Dict[str, Any] = {}
    cuts = [0]

    def resolve(node: Any, active: FrozenSet[str]) -> Any:
        if isinstance(node, list):
            return [resolve(item, active) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in cache:
                resolved = cache[ref]
            elif ref in active:
                logger.warning("Reference cycle at %s replaced by a generic object", ref)
                cuts[0] += 1
                return {"type": "object"}
            else:
                target = _lookup_pointer(document, ref)
                if target is None:
                    logger.warning("Unresolvable reference %s", ref)
                    return {"type": "object"}
                before = cuts[0]
                resolved = resolve(target, active | {ref})
                if cuts[0] == before:
                    cache[ref] = resolved
            siblings = {k: v for k, v in node.items() if k != "$ref"}
            if siblings and isinstance(resolved, dict):
                resolved = {**resolved, **resolve(siblings, active)}
            return resolved

        return {key: resolve(value, active) for key, value in node.items()}

    return resolve(document, frozenset())



def _convert_swagger2_operation(operation: Dict[str, Any], global_consumes: List[str]) -> Dict[str, Any]:
    converted = {k: v for k, v in operation.items() if k not in {"parameters", "responses", "consumes", "produces"}}
    consumes = operation.get("consumes") or global_consumes or ["application/json"]

    parameters: List[Dict[str, Any]] = []
    form_properties: Dict[str, Any] = {}
    form_required: List[str] = []
    for parameter in operation.get("parameters") or []:
        location = parameter.get("in")
        if location == "body":
            content_type = next((c for c in consumes if "json" in c), "application/json")
            converted["requestBody"] = {
                "required": parameter.get("required", False),
                "description": parameter.get("description", ""),
                "content": {content_type: {"schema": _rewrite_refs(parameter.get("schema") or {})}},
            }
        elif location == "formData":
            form_properties[parameter["name"]] = _scalar_schema(parameter)
            if parameter.get("required"):
                form_required.append(parameter["name"])
        else:
            parameters.append(_convert_swagger2_parameter(parameter))

    if form_properties and "requestBody" not in converted:
        if "multipart/form-data" in consumes:
            content_type = "multipart/form-data"
        else:
            content_type = "application/x-www-form-urlencoded"
        form_schema: Dict[str, Any] = {"type": "object", "properties": form_properties}
        if form_required:
            form_schema["required"] = form_required
        converted["requestBody"] = {"content": {content_type: {"schema": form_schema}}}

    if parameters:
        converted["parameters"] = parameters

    responses: Dict[str, Any] = {}
    for status, response in (operation.get("responses") or {}).items():
        new_response = {"description": (response or {}).get("description", "")}
        if (response or {}).get("schema"):
            new_response["content"] = {
                "application/json": {"schema": _rewrite_refs(response["schema"])}
            }
        responses[str(status)] = new_response
    converted["responses"] = responses
    return converted


def _convert_swagger2_parameter(parameter: Dict[str, Any]) -> Dict[str, Any]:
    if "$ref" in parameter:
        return _rewrite_refs(parameter)
    converted = {
        key: parameter[key]
        for key in ("name", "in", "description", "required")
        if key in parameter
    }
    converted["schema"] = _scalar_schema(parameter)
    return converted


def _scalar_schema(parameter: Dict[str, Any]) -> Dict[str, Any]:
    schema = {
        key: parameter[key]
        for key in ("type", "format", "enum", "default", "description")
        if key in parameter
    }
    if parameter.get("type") == "file":
        schema["type"] = "string"
        schema["format"] = "binary"
    if "items" in parameter:
        schema["items"] = _rewrite_refs(parameter["items"])
    return schema


def _rewrite_refs(node: Any) -> Any:
    if isinstance(node, list):
        return [_rewrite_refs(item) for item in node]
    if not isinstance(node, dict):
        return node
    rewritten = {}
    for key, value in node.items():
        if key == "$ref" and isinstance(value, str):
            rewritten[key] = (
                value.replace("#/definitions/", "#/components/schemas/")
                .replace("#/parameters/", "#/components/parameters/")
                .replace("#/responses/", "#/components/responses/")
            )
        else:
            rewritten[key] = _rewrite_refs(value)
    return rewritten


def _walk_schemas(node: Any) -> None:
    if isinstance(node, list):
        for item in node:
            _walk_schemas(item)
        return
    if not isinstance(node, dict):
        return

    schema_type = node.get("type")
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != "null"]
        node["type"] = non_null[0] if non_null else "string"
        if len(non_null) != len(schema_type):
            node["nullable"] = True
    if "const" in node and "enum" not in node:
        node["enum"] = [node.pop("const")]
    examples = node.get("examples")
    if isinstance(examples, list) and "type" in node:
        node.pop("examples")
        if examples:
            node["example"] = examples[0]

    for value in node.values():
        _walk_schemas(value)


def _lookup_pointer(document: Dict[str, Any], ref: str) -> Optional[Any]:
    if not ref.startswith("#/"):
        return None
    node: Any = document
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node
