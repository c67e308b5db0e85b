"""Shared fixtures: a small Petstore document and a Google Discovery document."""

import copy

import pytest

from api_tool_adapter.compiler import compile_tool
from api_tool_adapter.config import BuilderConfig
from api_tool_adapter.models import OPENAPI_KIND, OperationInfo, ServerInfo

PETSTORE = {
    "openapi": "3.0.0",
    "info": {"title": "Petstore", "description": "Pet API"},
    "servers": [{"url": "https://api.example.com"}],
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List pets",
                "tags": ["pets"],
                "parameters": [{"name": "limit", "in": "query", "schema": {"type": "integer"}}],
                "responses": {
                    "200": {
                        "description": "ok",
                        "content": {
                            "application/json": {
                                "schema": {"type": "array", "items": {"$ref": "#/components/schemas/Pet"}}
                            }
                        },
                    }
                },
            },
            "post": {
                "operationId": "createPet",
                "summary": "Create a pet",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/NewPet"}}},
                },
                "responses": {"201": {"description": "created"}},
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "integer"}}
            ],
            "get": {
                "operationId": "getPet",
                "summary": "Get a pet",
                "responses": {
                    "200": {
                        "description": "ok",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                    }
                },
            },
            "delete": {"operationId": "deletePet", "responses": {"204": {"description": "gone"}}},
        },
    },
    "components": {
        "schemas": {
            "Pet": {
                "type": "object",
                "description": "A pet",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "integer"},
                    "name": {"type": "string"},
                    "status": {"type": "string", "enum": ["available", "sold"]},
                },
            },
            "NewPet": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string"}, "tag": {"type": "string"}},
            },
        }
    },
}

DISCOVERY = {
    "kind": "discovery#restDescription",
    "name": "books",
    "version": "v1",
    "rootUrl": "https://www.googleapis.com/",
    "servicePath": "books/v1/",
    "schemas": {
        "Volume": {
            "id": "Volume",
            "type": "object",
            "description": "A volume",
            "properties": {
                "id": {"type": "string"},
                "pageCount": {"type": "integer"},
                "related": {"$ref": "Volume"},
            },
        }
    },
    "resources": {
        "volumes": {
            "methods": {
                "get": {
                    "httpMethod": "GET",
                    "path": "volumes/{volumeId}",
                    "description": "Gets volume information",
                    "parameters": {
                        "volumeId": {"type": "string", "location": "path", "required": True},
                        "projection": {"type": "string", "location": "query", "enum": ["full", "lite"]},
                    },
                    "response": {"$ref": "Volume"},
                },
                "list": {
                    "httpMethod": "GET",
                    "path": "volumes",
                    "parameters": {
                        "q": {"type": "string", "location": "query", "required": True},
                        "fields": {"type": "string", "repeated": True},
                    },
                },
                "insert": {
                    "httpMethod": "POST",
                    "path": "volumes",
                    "request": {"$ref": "Volume"},
                    "response": {"$ref": "Volume"},
                },
            },
            "resources": {
                "useruploaded": {
                    "methods": {"list": {"httpMethod": "GET", "path": "volumes/useruploaded"}}
                }
            },
        }
    },
}


@pytest.fixture
def petstore_document():
    """Fresh copy of the Petstore document."""
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def discovery_document():
    """Fresh copy of the Books Discovery document."""
    return copy.deepcopy(DISCOVERY)


@pytest.fixture
def petstore_config():
    """Build configuration for the Petstore document."""
    return BuilderConfig(server_name="petstore", generate_resources=True, generate_prompts=True)


def make_tool(path, method="GET", parameters=(), operation_id="op", server="test"):
    """Compile a single tool from hand-written parameters."""
    info = OperationInfo(
        operation_id=operation_id,
        summary=operation_id,
        path=path,
        method=method,
        parameters=tuple(parameters),
    )
    return compile_tool(info, ServerInfo(name=server), OPENAPI_KIND)
