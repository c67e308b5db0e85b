"""Tests for compiling documents into a tool registry."""

import json
import logging

import pytest

from api_tool_adapter.compiler import apply_overlay, build_registry, compile_registry, compile_tool
from api_tool_adapter.config import BuilderConfig, MetadataOverlay
from api_tool_adapter.errors import SpecLoadError
from api_tool_adapter.models import DISCOVERY_KIND, OPENAPI_KIND, OperationInfo, Parameter, ServerInfo
from api_tool_adapter.openapi import DocumentLoader


class TestCompileRegistry:
    """Test the OpenAPI compilation pipeline."""

    def test_tool_names_are_prefixed(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        assert set(registry.tools) == {
            "petstore_listPets",
            "petstore_createPet",
            "petstore_getPet",
            "petstore_deletePet",
        }
        assert registry.base_url == "https://api.example.com"
        assert registry.kind == OPENAPI_KIND

    def test_body_is_required(self, petstore_document, petstore_config):
        tool = compile_registry(petstore_config, petstore_document).tools["petstore_createPet"]
        assert tool.metadata.input_schema["required"] == ["body"]
        assert tool.content_type == "application/json"
        assert tool.description == "[petstore] Create a pet"

    def test_input_schema_properties(self, petstore_document, petstore_config):
        tool = compile_registry(petstore_config, petstore_document).tools["petstore_getPet"]
        assert tool.metadata.input_schema == {
            "type": "object",
            "properties": {"petId": {"type": "integer"}},
            "required": ["petId"],
        }

    def test_optional_parameters_have_no_required_list(self, petstore_document, petstore_config):
        tool = compile_registry(petstore_config, petstore_document).tools["petstore_listPets"]
        assert "required" not in tool.metadata.input_schema

    def test_tags(self, petstore_document, petstore_config):
        """Tags are the operation tags plus the server name and the document kind."""
        tool = compile_registry(petstore_config, petstore_document).tools["petstore_listPets"]
        assert tool.metadata.tags == ("openapi", "pets", "petstore")

    def test_response_schema(self, petstore_document, petstore_config):
        tool = compile_registry(petstore_config, petstore_document).tools["petstore_listPets"]
        assert tool.metadata.response_schema["type"] == "array"

    def test_lookup_without_prefix(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        assert registry.get("getPet") is registry.tools["petstore_getPet"]
        assert "getPet" in registry
        assert registry.get("nothing") is None

    def test_excluded_paths(self, petstore_document):
        config = BuilderConfig(server_name="petstore", excluded_paths=["{petId}"])
        registry = compile_registry(config, petstore_document)
        assert set(registry.tools) == {"petstore_listPets", "petstore_createPet"}

    def test_exclude_predicate(self, petstore_document, petstore_config):
        registry = compile_registry(
            petstore_config, petstore_document, exclude=lambda path: path == "/pets"
        )
        assert set(registry.tools) == {"petstore_getPet", "petstore_deletePet"}

    def test_missing_base_url(self, petstore_document, petstore_config):
        del petstore_document["servers"]
        with pytest.raises(SpecLoadError):
            compile_registry(petstore_config, petstore_document)

    def test_configured_base_url(self, petstore_document):
        config = BuilderConfig(server_name="petstore", api_base_url="https://sandbox.example.com")
        assert compile_registry(config, petstore_document).base_url == "https://sandbox.example.com"

    def test_registry_is_read_only(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        with pytest.raises(TypeError):
            registry.tools["x"] = registry.tools["petstore_getPet"]


class TestResourcesAndPrompts:
    """Test optional resource and prompt generation."""

    def test_resources(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        pet = registry.resources["petstore_Pet"]
        assert pet.description == "[petstore] A pet"
        assert pet.uri == "resource://schemas/petstore_Pet"
        assert pet.tags == ("resource", "petstore")
        assert pet.schema["properties"]["status"]["enum"] == ["available", "sold"]
        assert registry.resources["petstore_NewPet"].description == "[petstore] Resource for NewPet"

    def test_prompts(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        assert set(registry.prompts) == {"petstore_api_general_usage", "petstore_pet_examples"}

    def test_disabled_by_default(self, petstore_document):
        registry = compile_registry(BuilderConfig(server_name="petstore"), petstore_document)
        assert len(registry.resources) == 0
        assert len(registry.prompts) == 0


class TestDiscoveryCompilation:
    """Test compiling a Google Discovery document."""

    def test_tools(self, discovery_document):
        config = BuilderConfig(type="google", generate_resources=True)
        registry = compile_registry(config, discovery_document)
        tool = registry.tools["books_volumes_get"]
        assert tool.url == "volumes/{volumeId}"
        assert tool.operation_id == "volumes.get"
        assert set(tool.metadata.tags) == {"books", "google_api", "volumes"}
        assert registry.base_url == "https://www.googleapis.com/books/v1/"
        assert registry.resources["books_Volume"].tags == ("resource", "books", "google_api")

    def test_insert_requires_body(self, discovery_document):
        registry = compile_registry(BuilderConfig(type="discovery"), discovery_document)
        tool = registry.tools["books_volumes_insert"]
        assert tool.metadata.input_schema["required"] == ["body"]

    def test_detected_without_configured_type(self, discovery_document):
        """A Discovery document is recognised even when the type is left at openapi."""
        config = BuilderConfig()
        assert config.type == "openapi"
        registry = compile_registry(config, discovery_document)
        assert registry.kind == DISCOVERY_KIND
        assert "books_volumes_get" in registry.tools


class TestCompileTool:
    """Test single-tool compilation details."""

    def test_parameter_without_schema(self):
        info = OperationInfo(
            operation_id="search",
            summary="Search",
            path="/search",
            method="GET",
            parameters=(Parameter(name="q", location="query", description="Query text"),),
        )
        tool = compile_tool(info, ServerInfo(name="s"), OPENAPI_KIND)
        assert tool.metadata.input_schema["properties"]["q"] == {
            "type": "string",
            "description": "Query text",
        }

    def test_parameter_without_schema_or_description(self):
        info = OperationInfo(
            operation_id="search",
            summary="Search",
            path="/search",
            method="GET",
            parameters=(Parameter(name="q", location="query"),),
        )
        tool = compile_tool(info, ServerInfo(name="s"), OPENAPI_KIND)
        assert tool.metadata.input_schema["properties"]["q"]["description"] == "Type: string"


class TestOverlay:
    """Test metadata overlays."""

    def test_rename_describe_and_retag(self, petstore_document, petstore_config):
        overlay = MetadataOverlay.model_validate(
            {
                "tools": [
                    {
                        "name": "petstore_getPet",
                        "newName": "fetch pet",
                        "description": "Fetch one pet",
                        "tags": ["read"],
                        "parameters": [{"name": "petId", "description": "The pet id"}],
                    }
                ]
            }
        )
        registry = compile_registry(petstore_config, petstore_document, overlay)
        tool = registry.tools["fetch_pet"]
        assert "petstore_getPet" not in registry.tools
        assert tool.description == "Fetch one pet"
        assert tool.metadata.tags == ("read",)
        assert tool.metadata.input_schema["properties"]["petId"]["description"] == "The pet id"

    def test_body_property_description(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        overlay = MetadataOverlay.model_validate(
            {"tools": [{"name": "petstore_createPet", "parameters": [{"name": "name", "description": "Pet name"}]}]}
        )
        before = registry.tools["petstore_createPet"]
        updated = apply_overlay(before, overlay.tools[0])
        body = updated.metadata.input_schema["properties"]["body"]
        assert body["properties"]["name"]["description"] == "Pet name"
        assert "description" not in before.metadata.input_schema["properties"]["body"]["properties"]["name"]
        assert updated.name == before.name


class TestBuildRegistry:
    """Test loading plus compilation with graceful failure."""

    @pytest.mark.asyncio
    async def test_no_source_gives_empty_registry(self, caplog):
        with caplog.at_level(logging.WARNING):
            registry = await build_registry(BuilderConfig(server_name="x"), DocumentLoader())
        assert len(registry) == 0
        assert registry.server_info.name == "x"
        assert "zero tools" in caplog.text

    @pytest.mark.asyncio
    async def test_load_failure_gives_empty_registry(self, tmp_path):
        config = BuilderConfig(server_name="x", api_spec_path=str(tmp_path / "missing.json"))
        registry = await build_registry(config, DocumentLoader())
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_loads_file_and_overlay(self, tmp_path, petstore_document):
        spec = tmp_path / "openapi.json"
        spec.write_text(json.dumps(petstore_document))
        metadata = tmp_path / "metadata.json"
        metadata.write_text(json.dumps({"tools": [{"name": "petstore_listPets", "newName": "pets"}]}))
        config = BuilderConfig(
            server_name="petstore", api_spec_path=str(spec), metadata_file=str(metadata)
        )
        registry = await build_registry(config, DocumentLoader())
        assert "pets" in registry.tools
        assert len(registry) == 4

    @pytest.mark.asyncio
    async def test_bad_overlay_is_ignored(self, tmp_path, petstore_document):
        spec = tmp_path / "openapi.json"
        spec.write_text(json.dumps(petstore_document))
        config = BuilderConfig(
            server_name="petstore",
            api_spec_path=str(spec),
            metadata_file=str(tmp_path / "missing.json"),
        )
        registry = await build_registry(config, DocumentLoader())
        assert len(registry) == 4
