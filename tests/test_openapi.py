"""Tests for loading OpenAPI documents and extracting operations."""

import json
import logging

import httpx
import pytest

from api_tool_adapter.errors import SpecLoadError
from api_tool_adapter.normalize import normalize_document
from api_tool_adapter.openapi import (
    DocumentLoader,
    determine_base_url,
    extract_operations,
    parse_document,
    resolve_server_info,
)


def _document(paths, **extra):
    return normalize_document({"openapi": "3.0.0", "info": {"title": "T"}, "paths": paths, **extra})


class TestExtractOperations:
    """Test operation extraction from a normalized document."""

    def test_operation_ids(self, petstore_document):
        operations = extract_operations(normalize_document(petstore_document))
        assert set(operations) == {"listPets", "createPet", "getPet", "deletePet"}

    def test_path_level_parameters_are_merged(self, petstore_document):
        """Parameters declared on the path item apply to every method."""
        operation = extract_operations(normalize_document(petstore_document))["getPet"]
        (parameter,) = operation.parameters
        assert parameter.name == "petId"
        assert parameter.location == "path"
        assert parameter.required is True
        assert parameter.schema.type == "integer"

    def test_request_body(self, petstore_document):
        """The JSON request body becomes a required ``body`` parameter."""
        operation = extract_operations(normalize_document(petstore_document))["createPet"]
        body = operation.parameters[-1]
        assert body.name == "body"
        assert body.location == "body"
        assert body.required is True
        assert body.content_type == "application/json"
        assert set(body.schema.properties) == {"name", "tag"}

    def test_response_schema(self, petstore_document):
        operation = extract_operations(normalize_document(petstore_document))["listPets"]
        assert operation.response_schema.type == "array"
        assert operation.response_schema.items.properties["id"].type == "integer"

    def test_summary_fallbacks(self, petstore_document):
        """Summary is used when there is no description, then the operation id."""
        operations = extract_operations(normalize_document(petstore_document))
        assert operations["listPets"].summary == "List pets"
        assert operations["deletePet"].summary == "deletePet"

    def test_missing_response_schema_is_object(self, petstore_document):
        operation = extract_operations(normalize_document(petstore_document))["deletePet"]
        assert operation.response_schema.type == "object"

    def test_tags(self, petstore_document):
        operation = extract_operations(normalize_document(petstore_document))["listPets"]
        assert operation.tags == frozenset({"pets"})

    def test_fallback_operation_id(self):
        """Operations without an id are named after method and last path segment."""
        operations = extract_operations(_document({"/users/{userId}": {"get": {}}}))
        assert list(operations) == ["GET_userId"]

    def test_operation_id_is_sanitized(self):
        operations = extract_operations(_document({"/a": {"get": {"operationId": "list things"}}}))
        assert list(operations) == ["list_things"]

    def test_duplicate_operation_id_last_wins(self, caplog):
        """A later operation with the same id replaces the earlier one and warns."""
        document = _document(
            {
                "/a": {"get": {"operationId": "dup"}},
                "/b": {"get": {"operationId": "dup"}},
            }
        )
        with caplog.at_level(logging.WARNING):
            operations = extract_operations(document)
        assert operations["dup"].path == "/b"
        assert "replaces" in caplog.text

    def test_header_kept_cookie_dropped(self):
        document = _document(
            {
                "/a": {
                    "get": {
                        "operationId": "a",
                        "parameters": [
                            {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
                            {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                        ],
                    }
                }
            }
        )
        names = [p.name for p in extract_operations(document)["a"].parameters]
        assert names == ["X-Trace"]

    def test_parameter_description_copied_into_schema(self):
        document = _document(
            {
                "/a": {
                    "get": {
                        "operationId": "a",
                        "parameters": [
                            {"name": "q", "in": "query", "description": "Search", "schema": {"type": "string"}}
                        ],
                    }
                }
            }
        )
        (parameter,) = extract_operations(document)["a"].parameters
        assert parameter.schema.description == "Search"

    def test_all_of_ref_parameter_keeps_type(self):
        """A parameter wrapping a ref in allOf keeps the referenced type and enum."""
        document = _document(
            {
                "/items/{id}": {
                    "get": {
                        "operationId": "getItem",
                        "parameters": [
                            {
                                "name": "id",
                                "in": "path",
                                "required": True,
                                "description": "id",
                                "schema": {"allOf": [{"$ref": "#/components/schemas/Id"}]},
                            }
                        ],
                    }
                }
            },
            components={"schemas": {"Id": {"type": "integer", "enum": [1, 2]}}},
        )
        (parameter,) = extract_operations(document)["getItem"].parameters
        assert parameter.schema.to_json() == {"type": "integer", "description": "id", "enum": ["1", "2"]}


class TestBodyContentTypes:
    """Test request body media type priority."""

    def _body(self, content):
        document = _document(
            {"/a": {"post": {"operationId": "a", "requestBody": {"content": content}}}}
        )
        parameters = extract_operations(document)["a"].parameters
        return parameters[-1] if parameters else None

    def test_multipart_preferred_over_form(self):
        body = self._body(
            {
                "application/x-www-form-urlencoded": {"schema": {"type": "object"}},
                "multipart/form-data": {"schema": {"type": "object"}},
            }
        )
        assert body.content_type == "multipart/form-data"

    def test_form_urlencoded(self):
        body = self._body(
            {
                "text/plain": {"schema": {"type": "string"}},
                "application/x-www-form-urlencoded": {"schema": {"type": "object"}},
            }
        )
        assert body.content_type == "application/x-www-form-urlencoded"
        assert body.required is False

    def test_unsupported_media_type_has_no_body(self):
        assert self._body({"text/plain": {"schema": {"type": "string"}}}) is None


class TestBaseUrl:
    """Test base URL derivation."""

    def test_configured_url_wins(self, petstore_document):
        assert determine_base_url(petstore_document, None, "https://override") == "https://override"

    def test_first_server(self, petstore_document):
        assert determine_base_url(petstore_document) == "https://api.example.com"

    def test_relative_server_joined_with_spec_url(self):
        document = {"servers": [{"url": "/v2"}]}
        url = determine_base_url(document, "https://host.example.com/specs/openapi.json")
        assert url == "https://host.example.com/v2"

    def test_server_variables(self):
        document = {
            "servers": [
                {"url": "https://{region}.example.com", "variables": {"region": {"default": "eu"}}}
            ]
        }
        assert determine_base_url(document) == "https://eu.example.com"

    def test_no_base_url(self):
        with pytest.raises(SpecLoadError):
            determine_base_url({"servers": []})


class TestServerInfo:
    """Test server name and description resolution."""

    def test_generic_name_replaced_by_title(self, petstore_document):
        info = resolve_server_info(petstore_document, "openapi", "")
        assert info.name == "Petstore"
        assert info.description == "Pet API"

    def test_configured_values(self, petstore_document):
        info = resolve_server_info(petstore_document, "pets", "My pets")
        assert (info.name, info.description) == ("pets", "My pets")

    def test_default_description(self):
        info = resolve_server_info({"info": {"title": "Bare"}}, "", None)
        assert info.description == "Bare MCP Server"


class TestParseDocument:
    """Test JSON and YAML parsing."""

    def test_json(self):
        assert parse_document('{"openapi": "3.0.0"}') == {"openapi": "3.0.0"}

    def test_yaml(self):
        assert parse_document("openapi: 3.0.0\ninfo:\n  title: Y\n")["info"]["title"] == "Y"

    def test_scalar_is_rejected(self):
        with pytest.raises(SpecLoadError):
            parse_document("just a string")


class TestDocumentLoader:
    """Test fetching documents over HTTP and from disk."""

    @pytest.mark.asyncio
    async def test_fetch_and_cache(self, petstore_document):
        """A second load inside the cache window does not refetch."""
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(200, json=petstore_document)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            loader = DocumentLoader(cache_seconds=60, client=client)
            first = await loader.load("https://specs.example.com/openapi.json")
            second = await loader.load("https://specs.example.com/openapi.json")

        assert first["info"]["title"] == "Petstore"
        assert second is first
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(404))
        ) as client:
            loader = DocumentLoader(client=client)
            with pytest.raises(SpecLoadError):
                await loader.load("https://specs.example.com/missing.json")

    @pytest.mark.asyncio
    async def test_load_file(self, tmp_path, petstore_document):
        path = tmp_path / "openapi.json"
        path.write_text(json.dumps(petstore_document))
        document = await DocumentLoader().load(str(path))
        assert "/pets" in document["paths"]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(SpecLoadError):
            await DocumentLoader().load(str(tmp_path / "nope.yaml"))
