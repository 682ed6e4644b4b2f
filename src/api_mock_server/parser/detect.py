"""Decoding of API documents and detection of their version."""

import json

import yaml

from api_mock_server.errors import DocumentError


def load_document(source: str | bytes | dict) -> dict:
    """Decode a JSON or YAML document, or pass a parsed mapping through.

    Raises DocumentError if the text does not decode to a mapping.
    """
    if isinstance(source, dict):
        return source
    if isinstance(source, bytes):
        source = source.decode("utf-8")
    if not isinstance(source, str):
        raise DocumentError(f"Unsupported document type: {type(source).__name__}")

    # YAML is a superset of JSON, but JSON first gives clearer errors for .json input
    try:
        data = json.loads(source)
    except ValueError:
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as e:
            raise DocumentError(f"Document is neither valid JSON nor YAML: {e}") from e

    if not isinstance(data, dict):
        raise DocumentError("Document must be a JSON or YAML mapping")
    return data


def detect_version(data: dict) -> str:
    """Detect the document flavour.

    Returns: 'openapi' (3.x) or 'swagger' (2.0).
    """
    if "openapi" in data:
        if not str(data["openapi"]).startswith("3."):
            raise DocumentError(f"Unsupported OpenAPI version: {data['openapi']}")
        return "openapi"
    if "swagger" in data:
        if str(data["swagger"]) != "2.0":
            raise DocumentError(f"Unsupported Swagger version: {data['swagger']}")
        return "swagger"
    raise DocumentError("Document has neither an 'openapi' nor a 'swagger' version field")
