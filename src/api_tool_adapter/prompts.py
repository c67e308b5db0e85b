"""Usage-guide and example prompts generated from compiled tools."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Sequence

from .models import DISCOVERY_KIND, PromptInfo, ServerInfo, ToolInfo
from .naming import sanitize_name, singularize_resource


logger = logging.getLogger(__name__)

_EXAMPLE_VALUES = {"integer": "1", "number": "1", "boolean": "true"}


def generate_prompts(
    server_info: ServerInfo, tools: Sequence[ToolInfo], kind: str, api_title: str = "API"
) -> List[PromptInfo]:
    prompts = [general_usage_prompt(server_info, tools, api_title)]
    if kind == DISCOVERY_KIND:
        prompts.extend(discovery_resource_prompts(server_info, tools, api_title))
    else:
        prompts.extend(crud_example_prompts(server_info, tools))
    logger.info("Generated %s prompts", len(prompts))
    return prompts


def general_usage_prompt(
    server_info: ServerInfo, tools: Sequence[ToolInfo], api_title: str
) -> PromptInfo:
    lines = [
        f"# {server_info.name} - API Usage Guide for {api_title}",
        "",
        "This API provides the following capabilities:",
        "",
    ]
    for tool in tools:
        lines.append(f"## {tool.name}")
        lines.append(f"- Path: `{tool.url}` (HTTP {tool.method})")
        lines.append(f"- Description: {tool.description or 'No description'}")
        if tool.parameters:
            lines.append("- Parameters:")
            for parameter in tool.parameters:
                required = "Required" if parameter.required else "Optional"
                lines.append(
                    f"  - `{parameter.name}` ({parameter.location}): "
                    f"{parameter.description or 'No description'} [{required}]"
                )
        lines.append("")

    return PromptInfo(
        name=sanitize_name(f"{server_info.name}_api_general_usage"),
        content="\n".join(lines),
        description=f"General guidance for using {api_title} API",
    )


def identify_crud_operations(tools: Sequence[ToolInfo]) -> Dict[str, Dict[str, str]]:
    """Map singular resource nouns to the tools that list/get/create/update/delete them."""
    crud: Dict[str, Dict[str, str]] = {}
    for tool in tools:
        segments = [s for s in tool.url.split("/") if s and not s.startswith("{")]
        if not segments:
            continue
        resource = singularize_resource(segments[-1])
        actions = crud.setdefault(resource, {})
        method = tool.method.upper()
        if method == "GET":
            actions["get" if re.search(r"\{[^}]+\}", tool.url) else "list"] = tool.name
        elif method == "POST":
            actions["create"] = tool.name
        elif method in {"PUT", "PATCH"}:
            actions["update"] = tool.name
        elif method == "DELETE":
            actions["delete"] = tool.name
    return crud


def crud_example_prompts(server_info: ServerInfo, tools: Sequence[ToolInfo]) -> List[PromptInfo]:
    prompts: List[PromptInfo] = []
    for resource, actions in identify_crud_operations(tools).items():
        lines = [
            f"# {server_info.name} - Examples for working with {resource}",
            "",
            f"Common scenarios for handling {resource} resources:",
            "",
        ]
        if "list" in actions:
            lines += _example_block(
                f"Listing {resource} resources",
                f"To list all {resource} resources:",
                f"{{{{tool.{actions['list']}()}}}}",
            )
        if "get" in actions:
            lines += _example_block(
                f"Getting a specific {resource}",
                f"To retrieve a specific {resource} by ID:",
                f'{{{{tool.{actions["get"]}(id="example-id")}}}}',
            )
        if "create" in actions:
            lines += _example_block(
                f"Creating a new {resource}",
                f"To create a new {resource}:",
                f"{{{{tool.{actions['create']}(\n"
                '    name="Example name",\n'
                '    description="Example description"\n'
                "    # Add other required fields\n"
                ")}}",
            )
        if "update" in actions:
            lines += _example_block(
                f"Updating a {resource}",
                f"To update an existing {resource}:",
                f'{{{{tool.{actions["update"]}(id="example-id", name="Updated name")}}}}',
            )
        if "delete" in actions:
            lines += _example_block(
                f"Deleting a {resource}",
                f"To delete a {resource}:",
                f'{{{{tool.{actions["delete"]}(id="example-id")}}}}',
            )

        prompts.append(
            PromptInfo(
                name=sanitize_name(f"{server_info.name}_{resource}_examples"),
                content="\n".join(lines),
                description=f"Example usage patterns for {resource} resources",
            )
        )
    return prompts


def discovery_resource_prompts(
    server_info: ServerInfo, tools: Sequence[ToolInfo], api_title: str
) -> List[PromptInfo]:
    grouped: Dict[str, List[ToolInfo]] = {}
    for tool in tools:
        resource, _, _ = (tool.operation_id or tool.name).rpartition(".")
        grouped.setdefault(resource or tool.name, []).append(tool)

    prompts: List[PromptInfo] = []
    for resource, resource_tools in grouped.items():
        lines = [
            f"# {server_info.name} - Examples for working with {resource}",
            "",
            f"Common scenarios for using {resource} in the {api_title} API:",
            "",
        ]
        for tool in resource_tools:
            method_name = (tool.operation_id or tool.name).rpartition(".")[2]
            arguments = [
                f"{p.name}={_example_value(p.name, p.schema_type)}"
                for p in tool.parameters
                if p.required and p.location != "body"
            ]
            call = f"{{{{tool.{tool.name}({', '.join(arguments)})}}}}"
            lines += _example_block(f"Using {method_name}", tool.description, call)

        prompts.append(
            PromptInfo(
                name=sanitize_name(f"{server_info.name}_{resource}_examples"),
                content="\n".join(lines),
                description=f"Example usage patterns for {resource} in Google {api_title} API",
            )
        )
    return prompts


def _example_block(title: str, intro: str, call: str) -> List[str]:
    return [f"## {title}", "", intro, "```", call, "```", ""]


def _example_value(name: str, schema_type: str) -> str:
    if schema_type in _EXAMPLE_VALUES:
        return _EXAMPLE_VALUES[schema_type]
    if schema_type == "string":
        return f'"{name}_example"'
    return '"example"'
