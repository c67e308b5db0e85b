"""Tests for generated usage and example prompts."""

from api_tool_adapter.compiler import compile_registry
from api_tool_adapter.config import BuilderConfig
from api_tool_adapter.models import DISCOVERY_KIND, OPENAPI_KIND, Parameter, ServerInfo
from api_tool_adapter.prompts import generate_prompts, identify_crud_operations
from api_tool_adapter.schema import NormalizedSchema

from conftest import make_tool


class TestIdentifyCrudOperations:
    """Test CRUD classification by path and method."""

    def test_classification(self):
        tools = [
            make_tool("/categories", "GET", operation_id="listCategories"),
            make_tool("/categories/{id}", "GET", operation_id="getCategory"),
            make_tool("/categories", "POST", operation_id="createCategory"),
            make_tool("/categories/{id}", "PATCH", operation_id="updateCategory"),
            make_tool("/categories/{id}", "DELETE", operation_id="deleteCategory"),
        ]
        assert identify_crud_operations(tools) == {
            "category": {
                "list": "test_listCategories",
                "get": "test_getCategory",
                "create": "test_createCategory",
                "update": "test_updateCategory",
                "delete": "test_deleteCategory",
            }
        }

    def test_root_path_is_skipped(self):
        assert identify_crud_operations([make_tool("/", "GET")]) == {}


class TestOpenApiPrompts:
    """Test prompts for OpenAPI registries."""

    def test_general_usage(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        content = registry.prompts["petstore_api_general_usage"].content
        assert content.startswith("# petstore - API Usage Guide for Petstore")
        assert "## petstore_getPet" in content
        assert "- Path: `/pets/{petId}` (HTTP GET)" in content
        assert "`petId` (path): No description [Required]" in content

    def test_crud_examples(self, petstore_document, petstore_config):
        registry = compile_registry(petstore_config, petstore_document)
        prompt = registry.prompts["petstore_pet_examples"]
        assert "{{tool.petstore_listPets()}}" in prompt.content
        assert '{{tool.petstore_getPet(id="example-id")}}' in prompt.content
        assert '{{tool.petstore_deletePet(id="example-id")}}' in prompt.content
        assert prompt.description == "Example usage patterns for pet resources"

    def test_kind_selects_generator(self):
        tools = [make_tool("/pets", "GET", operation_id="pets.list")]
        names = [p.name for p in generate_prompts(ServerInfo(name="test"), tools, OPENAPI_KIND)]
        assert names == ["test_api_general_usage", "test_pet_examples"]


class TestDiscoveryPrompts:
    """Test prompts for Discovery registries."""

    def test_grouped_by_resource(self, discovery_document):
        config = BuilderConfig(type="discovery", generate_prompts=True)
        registry = compile_registry(config, discovery_document)
        assert set(registry.prompts) == {
            "books_api_general_usage",
            "books_volumes_examples",
            "books_volumes_useruploaded_examples",
        }

    def test_example_arguments(self, discovery_document):
        config = BuilderConfig(type="discovery", generate_prompts=True)
        content = compile_registry(config, discovery_document).prompts["books_volumes_examples"].content
        assert '{{tool.books_volumes_get(volumeId="volumeId_example")}}' in content
        assert '{{tool.books_volumes_list(q="q_example")}}' in content
        assert "## Using insert" in content

    def test_typed_example_values(self):
        tool = make_tool(
            "/items/{id}",
            parameters=[
                Parameter(name="count", location="query", required=True, schema=NormalizedSchema(type="integer")),
                Parameter(name="name", location="query", required=True),
            ],
            operation_id="items.get",
        )
        prompts = generate_prompts(ServerInfo(name="test"), [tool], DISCOVERY_KIND)
        assert '{{tool.test_items_get(count=1, name="name_example")}}' in prompts[1].content
