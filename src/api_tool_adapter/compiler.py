"""Compilation of extracted operations into an immutable tool registry."""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from . import discovery, openapi
from .config import BuilderConfig, MetadataOverlay, ToolOverlay, load_metadata_overlay
from .errors import SpecLoadError
from .filters import OperationFilter, PathPredicate
from .models import (
    DEFAULT_CONTENT_TYPE,
    DISCOVERY_KIND,
    OPENAPI_KIND,
    OperationInfo,
    ResourceInfo,
    ServerInfo,
    ToolInfo,
    ToolMetadata,
)
from .naming import sanitize_name, sanitize_tool_name
from .normalize import normalize_document
from .openapi import DocumentLoader
from .prompts import generate_prompts
from .schema import translate_discovery_schema, translate_openapi_schema
from .tool_registry import ToolRegistry


logger = logging.getLogger(__name__)


def compile_registry(
    config: BuilderConfig,
    document: Dict[str, Any],
    overlay: Optional[MetadataOverlay] = None,
    exclude: Optional[PathPredicate] = None,
    include: Optional[PathPredicate] = None,
) -> ToolRegistry:
    """Pure pipeline: normalize, extract, filter, compile.

    Raises ``SpecLoadError`` when the document cannot be normalized or no
    base URL can be determined.
    """
    if config.type == "discovery" or discovery.is_discovery_document(document):
        if config.type != "discovery":
            logger.info("Document is a Google Discovery description; compiling as type=discovery")
        kind = DISCOVERY_KIND
        server_info = discovery.resolve_server_info(
            document, config.server_name, config.server_description
        )
        base_url = discovery.determine_base_url(document, config.api_base_url)
        operations = discovery.extract_operations(document)
        api_title = f"{document.get('name', 'GoogleAPI')} {document.get('version', 'v1')}"
    else:
        kind = OPENAPI_KIND
        document = normalize_document(document)
        server_info = openapi.resolve_server_info(
            document, config.server_name, config.server_description
        )
        base_url = openapi.determine_base_url(document, config.api_spec_url, config.api_base_url)
        operations = openapi.extract_operations(document)
        api_title = (document.get("info") or {}).get("title") or "API"

    operation_filter = OperationFilter(
        exclude_predicate=exclude,
        include_predicate=include,
        excluded_paths=tuple(config.excluded_paths),
        included_paths=tuple(config.included_paths),
    )
    operations = operation_filter.apply(operations)

    tools: List[ToolInfo] = []
    for operation_id, info in operations.items():
        try:
            tool = compile_tool(info, server_info, kind)
            entry = overlay.find(tool.name) if overlay else None
            if entry is not None:
                tool = apply_overlay(tool, entry)
        except Exception:
            logger.error("Failed to register tool for operation %s", operation_id, exc_info=True)
            continue
        tools.append(tool)

    resources: List[ResourceInfo] = []
    if config.generate_resources:
        resources = compile_resources(document, server_info, kind)

    registry_prompts = []
    if config.generate_prompts:
        registry_prompts = generate_prompts(server_info, tools, kind, api_title)

    registry = ToolRegistry(
        server_info=server_info,
        base_url=base_url,
        tools=tools,
        resources=resources,
        prompts=registry_prompts,
        kind=kind,
        default_path_parameters=config.default_path_parameters,
        server_headers=config.server_headers,
    )
    logger.info(
        "Registered %s tools, %s resources and %s prompts for %s",
        len(registry),
        len(registry.resources),
        len(registry.prompts),
        server_info.name,
    )
    return registry


async def build_registry(
    config: BuilderConfig,
    loader: DocumentLoader,
    overlay: Optional[MetadataOverlay] = None,
) -> ToolRegistry:
    """Load the configured document and compile it; load failures yield an empty registry."""
    fallback = ServerInfo(name=config.server_name or config.type, description=config.server_description)
    kind = DISCOVERY_KIND if config.type == "discovery" else OPENAPI_KIND

    source = config.spec_source
    if not source:
        logger.warning("No apiSpecUrl or apiSpecPath configured; starting with zero tools")
        return ToolRegistry.empty(fallback, kind)

    if overlay is None and config.metadata_file:
        try:
            overlay = load_metadata_overlay(config.metadata_file)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring metadata overlay %s: %s", config.metadata_file, exc)

    try:
        document = await loader.load(source)
        return compile_registry(config, document, overlay)
    except SpecLoadError as exc:
        logger.warning("API description unavailable, starting with zero tools: %s", exc)
        return ToolRegistry.empty(fallback, kind)


def compile_tool(info: OperationInfo, server_info: ServerInfo, kind: str) -> ToolInfo:
    properties: Dict[str, Any] = {}
    required: List[str] = []
    content_type = DEFAULT_CONTENT_TYPE

    for parameter in info.parameters:
        if parameter.schema is not None:
            properties[parameter.name] = parameter.schema.to_json()
        else:
            properties[parameter.name] = {
                "type": "string",
                "description": parameter.description or "Type: string",
            }
        if parameter.required or parameter.location == "body":
            required.append(parameter.name)
        if parameter.location == "body" and parameter.content_type:
            content_type = parameter.content_type

    input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        input_schema["required"] = required

    name = sanitize_tool_name(info.operation_id, server_info.name)
    metadata = ToolMetadata(
        name=name,
        description=f"[{server_info.name}] {info.summary}",
        input_schema=input_schema,
        response_schema=info.response_schema.to_json() if info.response_schema else {},
        tags=tuple(sorted(set(info.tags) | {server_info.name, kind})),
        server_info=server_info,
    )
    return ToolInfo(
        name=name,
        url=info.path,
        method=info.method,
        content_type=content_type,
        parameters=info.parameters,
        metadata=metadata,
        operation_id=info.operation_id,
    )


def apply_overlay(tool: ToolInfo, entry: ToolOverlay) -> ToolInfo:
    metadata = tool.metadata
    input_schema = copy.deepcopy(metadata.input_schema)
    properties = input_schema.get("properties") or {}
    body_properties = (properties.get("body") or {}).get("properties") or {}

    for parameter in entry.parameters:
        if not parameter.description:
            continue
        if parameter.name in properties:
            properties[parameter.name]["description"] = parameter.description
        elif parameter.name in body_properties:
            body_properties[parameter.name]["description"] = parameter.description

    name = sanitize_name(entry.new_name) if entry.new_name else tool.name
    metadata = replace(
        metadata,
        name=name,
        description=entry.description or metadata.description,
        tags=tuple(entry.tags) if entry.tags is not None else metadata.tags,
        input_schema=input_schema,
    )
    return replace(tool, name=name, metadata=metadata)


def compile_resources(
    document: Dict[str, Any], server_info: ServerInfo, kind: str
) -> List[ResourceInfo]:
    if kind == DISCOVERY_KIND:
        schemas = document.get("schemas") or {}
        tags = ("resource", server_info.name, DISCOVERY_KIND)
    else:
        schemas = (document.get("components") or {}).get("schemas") or {}
        tags = ("resource", server_info.name)

    if not schemas:
        logger.info("No schemas found for resource generation")
        return []

    resources: List[ResourceInfo] = []
    for schema_name, raw in schemas.items():
        if kind == DISCOVERY_KIND:
            normalized = translate_discovery_schema({"$ref": schema_name}, schemas)
        else:
            normalized = translate_openapi_schema(raw, "object")
        description = (raw or {}).get("description") or f"Resource for {schema_name}"
        resources.append(
            ResourceInfo(
                name=sanitize_tool_name(schema_name, server_info.name),
                description=f"[{server_info.name}] {description}",
                schema=normalized.to_json(),
                tags=tags,
            )
        )
    logger.info("Registered %s resources", len(resources))
    return resources
