"""Google API Discovery operation extractor."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .errors import OperationRegistrationError, SpecLoadError
from .models import OperationInfo, Parameter, ServerInfo
from .schema import (
    NormalizedSchema,
    SourceSchema,
    translate_discovery_schema,
    translate_discovery_type,
)


logger = logging.getLogger(__name__)


def is_discovery_document(document: Mapping[str, Any]) -> bool:
    return document.get("kind") == "discovery#restDescription" or (
        "resources" in document and "paths" not in document
    )


def resolve_server_info(
    document: Dict[str, Any], server_name: Optional[str], server_description: Optional[str]
) -> ServerInfo:
    api_name = document.get("name") or "GoogleAPI"
    version = document.get("version") or "v1"
    return ServerInfo(
        name=server_name or api_name,
        description=server_description or f"Google API: {api_name} ({version})",
    )


def determine_base_url(document: Dict[str, Any], configured: Optional[str] = None) -> str:
    if configured:
        return configured
    if document.get("baseUrl"):
        return document["baseUrl"]
    if document.get("rootUrl"):
        return document["rootUrl"].rstrip("/") + "/" + (document.get("servicePath") or "").lstrip("/")
    raise SpecLoadError("No base URL configured and the Discovery document declares none")


def extract_operations(document: Dict[str, Any]) -> Dict[str, OperationInfo]:
    """Walk ``resources[*].methods`` and one level of nested resources."""
    schemas: Mapping[str, SourceSchema] = document.get("schemas") or {}
    operations: Dict[str, OperationInfo] = {}

    for resource_name, resource in (document.get("resources") or {}).items():
        _collect_methods(resource.get("methods") or {}, resource_name, None, schemas, operations)
        for sub_name, sub_resource in (resource.get("resources") or {}).items():
            _collect_methods(
                sub_resource.get("methods") or {}, resource_name, sub_name, schemas, operations
            )

    if not operations:
        logger.warning("Discovery document has no resource methods")
    logger.info("Extracted %s operations from Discovery document", len(operations))
    return operations


def _collect_methods(
    methods: Dict[str, Any],
    resource_name: str,
    sub_resource_name: Optional[str],
    schemas: Mapping[str, SourceSchema],
    operations: Dict[str, OperationInfo],
) -> None:
    for method_name, method in methods.items():
        if sub_resource_name:
            operation_id = f"{resource_name}.{sub_resource_name}.{method_name}"
        else:
            operation_id = f"{resource_name}.{method_name}"
        try:
            info = _build_operation(operation_id, resource_name, method, schemas)
        except Exception as exc:
            error = OperationRegistrationError(operation_id, str(exc))
            logger.error("%s", error, exc_info=True)
            continue
        if operation_id in operations:
            logger.warning("Operation id %s defined twice; keeping the later one", operation_id)
        operations[operation_id] = info


def _build_operation(
    operation_id: str,
    resource_name: str,
    method: Dict[str, Any],
    schemas: Mapping[str, SourceSchema],
) -> OperationInfo:
    path = method.get("path") or ""
    if "+" in path and method.get("flatPath"):
        path = method["flatPath"]

    parameters = [
        _build_parameter(name, raw) for name, raw in (method.get("parameters") or {}).items()
    ]

    request = method.get("request")
    if request is not None:
        parameters.append(
            Parameter(
                name="body",
                location="body",
                required=True,
                schema=_resolve_reference(request, schemas),
                description="Request body",
                content_type="application/json",
            )
        )

    response_schema = None
    if method.get("response") is not None:
        response_schema = _resolve_reference(method["response"], schemas)

    return OperationInfo(
        operation_id=operation_id,
        summary=method.get("description") or operation_id,
        path=path,
        method=(method.get("httpMethod") or "GET").upper(),
        parameters=tuple(parameters),
        response_schema=response_schema,
        tags=frozenset({resource_name}),
    )


def _build_parameter(name: str, raw: Dict[str, Any]) -> Parameter:
    description = raw.get("description") or ""
    fields: Dict[str, Any] = {"type": translate_discovery_type(raw.get("type"))}
    if description:
        fields["description"] = description
    if raw.get("enum"):
        fields["enum"] = [str(value) for value in raw["enum"]]
    schema = NormalizedSchema(**fields)
    if raw.get("repeated"):
        schema = NormalizedSchema(type="array", description=schema.description, items=schema)

    return Parameter(
        name=name,
        location=(raw.get("location") or "query").lower(),
        required=bool(raw.get("required", False)),
        schema=schema,
        description=description,
    )


def _resolve_reference(
    reference: Dict[str, Any], schemas: Mapping[str, SourceSchema]
) -> NormalizedSchema:
    ref = reference.get("$ref")
    if ref and ref in schemas:
        return translate_discovery_schema({"$ref": ref}, schemas)
    return NormalizedSchema(type="object")
