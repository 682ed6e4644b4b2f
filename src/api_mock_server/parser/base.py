"""Normalized data models for parsed API documents.

Both OpenAPI 3.x and Swagger 2.0 documents are converted into these
models so the rest of the server never looks at version-specific keys.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict

from api_mock_server.engine.script import Script

PATH_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


class Param(BaseModel):
    """A single operation parameter (query, path, header, or cookie)."""

    name: str
    location: str  # query / path / header / cookie
    required: bool
    param_type: str  # string / integer / boolean / array / object
    description: str = ""


class ResponseSpec(BaseModel):
    """One declared response of an operation."""

    status: str  # "200", "404", "default"
    description: str = ""
    content_type: str | None = None
    body_schema: dict | None = None
    example: Any = None
    has_example: bool = False
    headers: dict[str, dict] = {}  # {name: header schema object}


class SecurityScheme(BaseModel):
    """A declared authentication mechanism."""

    name: str
    type: str  # http / apiKey / oauth2 / openIdConnect / mutualTLS
    scheme: str | None = None  # bearer / basic for type http
    location: str | None = None  # header / query / cookie for type apiKey
    param_name: str | None = None
    bearer_format: str | None = None
    flows: dict[str, dict] = {}


class SchemaDef(BaseModel):
    """A named schema from components.schemas (or definitions)."""

    name: str
    definition: dict
    seed_script: str | None = None


class Operation(BaseModel):
    """A single (path, method) entry with all its metadata."""

    method: str  # GET / POST / PUT / DELETE / PATCH ...
    path: str  # /posts/{id}
    operation_id: str | None = None
    summary: str = ""
    tags: list[str] = []
    parameters: list[Param] = []
    request_body: dict | None = None
    content_type: str = "application/json"
    responses: dict[str, ResponseSpec] = {}
    security: list[dict[str, list[str]]] = []
    handler: Script | None = None
    handler_error: str | None = None  # compile failure of x-handler, answered with a 500

    @property
    def path_params(self) -> list[str]:
        """Placeholder names of the path template, in order."""
        return PATH_PLACEHOLDER.findall(self.path)

    @property
    def has_handler(self) -> bool:
        return self.handler is not None or self.handler_error is not None

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"


class ApiDocument(BaseModel):
    """The parsed, immutable API document."""

    model_config = ConfigDict(frozen=True)

    version: str  # "openapi" / "swagger"
    title: str = ""
    operations: list[Operation]
    schemas: dict[str, SchemaDef]
    security_schemes: dict[str, SecurityScheme]
    raw: dict

    def resolve_ref(self, ref: str) -> Any:
        """Follow a local JSON pointer such as '#/components/schemas/Post'."""
        return resolve_pointer(self.raw, ref)


def resolve_pointer(root: dict, ref: str) -> Any:
    """Resolve a local '#/a/b' reference against the raw document.

    Returns None for remote references or missing targets.
    """
    if not ref.startswith("#/"):
        return None
    node: Any = root
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node
