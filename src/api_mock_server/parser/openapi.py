"""OpenAPI / Swagger document parser.

Parses OpenAPI 3.x and Swagger 2.0 documents into an ApiDocument.
"""

import logging
from typing import Any

from pydantic import ValidationError

from api_mock_server.engine.script import Script, is_shortcut_name
from api_mock_server.errors import DocumentError, ScriptError

from .base import ApiDocument, Operation, Param, ResponseSpec, SchemaDef, SecurityScheme, resolve_pointer
from .detect import detect_version, load_document

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

# names every handler script receives; path parameters may not shadow them
HANDLER_CONTEXT = ("store", "faker", "req", "res")


def parse_document(source: str | bytes | dict) -> ApiDocument:
    """Parse an OpenAPI/Swagger document (text or mapping) into an ApiDocument."""
    doc = load_document(source)
    version = detect_version(doc)

    paths = _mapping(doc.get("paths"), "'paths'")

    operations = []
    for path, path_item in paths.items():
        path_item = _mapping(_deref(doc, path_item), f"Path item {path}")
        shared_params = _sequence(path_item.get("parameters"), f"Parameters of {path}")

        for method, operation in path_item.items():
            if str(method).lower() not in HTTP_METHODS:
                continue
            if not isinstance(operation, dict):
                raise DocumentError(f"Operation {method.upper()} {path} must be a mapping")
            try:
                operations.append(_parse_operation(doc, version, path, method, operation, shared_params))
            except ValidationError as e:
                raise DocumentError(f"Invalid operation {method.upper()} {path}: {e}") from e

    logger.debug("Parsed %d operations from %s document", len(operations), version)

    try:
        return ApiDocument(
            version=version,
            title=_mapping(doc.get("info"), "'info'").get("title", ""),
            operations=operations,
            schemas=_parse_schemas(doc, version),
            security_schemes=_parse_security_schemes(doc, version),
            raw=doc,
        )
    except ValidationError as e:
        raise DocumentError(f"Invalid document: {e}") from e


def _parse_operation(
    doc: dict, version: str, path: str, method: str, operation: dict, shared_params: list
) -> Operation:
    label = f"{method.upper()} {path}"
    own_params = _sequence(operation.get("parameters"), f"Parameters of {label}")
    raw_params = _merge_parameters(doc, shared_params, own_params)
    params = _parse_parameters(raw_params)

    if version == "swagger":
        request_body, content_type = _swagger_request_body(doc, raw_params, operation)
        responses = _swagger_responses(doc, operation, label)
    else:
        request_body, content_type = _openapi_request_body(doc, operation.get("requestBody"))
        responses = _openapi_responses(doc, operation.get("responses"), label)

    security = operation.get("security")
    if security is None:
        security = doc.get("security") or []
    security = _sequence(security, f"Security of {label}")

    op = Operation(
        method=method.upper(),
        path=path,
        operation_id=operation.get("operationId"),
        summary=operation.get("summary", ""),
        tags=operation.get("tags", []),
        parameters=params,
        request_body=request_body,
        content_type=content_type,
        responses=responses,
        security=security,
    )

    source = operation.get("x-handler")
    if source is None:
        return op
    if not isinstance(source, str):
        raise DocumentError(f"x-handler of {label} must be a string")

    shortcuts = [name for name in op.path_params if is_shortcut_name(name, HANDLER_CONTEXT)]
    try:
        handler = Script.compile(f"x-handler {label}", source, HANDLER_CONTEXT + tuple(shortcuts))
    except ScriptError as e:
        logger.warning("%s, the route will answer 500", e)
        return op.model_copy(update={"handler_error": str(e)})
    return op.model_copy(update={"handler": handler})


def _deref(doc: dict, node: Any) -> Any:
    """Follow $ref chains on a node until it is an inline object."""
    seen = set()
    while isinstance(node, dict) and "$ref" in node:
        ref = node["$ref"]
        if ref in seen:
            raise DocumentError(f"Circular reference: {ref}")
        seen.add(ref)
        target = resolve_pointer(doc, ref)
        if target is None:
            raise DocumentError(f"Unresolvable reference: {ref}")
        node = target
    return node


def _mapping(node: Any, what: str) -> dict:
    """A mapping node, with a missing one read as empty."""
    if node is None:
        return {}
    if not isinstance(node, dict):
        raise DocumentError(f"{what} must be a mapping")
    return node


def _sequence(node: Any, what: str) -> list:
    if node is None:
        return []
    if not isinstance(node, list):
        raise DocumentError(f"{what} must be a list")
    return node


def _merge_parameters(doc: dict, shared: list, own: list) -> list[dict]:
    merged: dict[tuple, dict] = {}
    for raw in list(shared or []) + list(own or []):
        p = _deref(doc, raw)
        if not isinstance(p, dict) or "name" not in p:
            raise DocumentError(f"Invalid parameter: {raw}")
        merged[(p["name"], p.get("in", "query"))] = p
    return list(merged.values())


def _parse_parameters(params: list[dict]) -> list[Param]:
    result = []
    for p in params:
        location = p.get("in", "query")
        if location == "body":
            continue
        # Swagger 2.0 keeps the type on the parameter itself
        schema = _mapping(p.get("schema"), f"Schema of parameter {p['name']}") or p
        result.append(
            Param(
                name=p["name"],
                location=location,
                required=p.get("required", location == "path"),
                param_type=schema.get("type", "string"),
                description=p.get("description", ""),
            )
        )
    return result


def _pick_media(content: dict) -> tuple[str | None, dict]:
    """Prefer JSON media types, then the first declared one."""
    if not content:
        return None, {}
    for content_type in content:
        if content_type.startswith("application/json") or content_type.endswith("+json"):
            return content_type, _mapping(content[content_type], f"Media type {content_type}")
    for content_type in ("*/*", "multipart/form-data"):
        if content_type in content:
            return content_type, _mapping(content[content_type], f"Media type {content_type}")
    content_type = next(iter(content))
    return content_type, _mapping(content[content_type], f"Media type {content_type}")


def _openapi_request_body(doc: dict, body: dict | None) -> tuple[dict | None, str]:
    body = _mapping(_deref(doc, body), "Request body")
    if not body:
        return None, "application/json"
    content_type, media = _pick_media(_mapping(body.get("content"), "Request body content"))
    return media.get("schema"), content_type or "application/json"


def _swagger_request_body(doc: dict, params: list[dict], operation: dict) -> tuple[dict | None, str]:
    consumes = _sequence(operation.get("consumes") or doc.get("consumes"), "'consumes'") or ["application/json"]
    for p in params:
        if p.get("in") == "body":
            return p.get("schema"), consumes[0]
    form = [p for p in params if p.get("in") == "formData"]
    if form:
        properties = {p["name"]: {k: v for k, v in p.items() if k not in ("name", "in", "required")} for p in form}
        required = [p["name"] for p in form if p.get("required")]
        content_type = "multipart/form-data" if "multipart/form-data" in consumes else "application/x-www-form-urlencoded"
        return {"type": "object", "properties": properties, "required": required}, content_type
    return None, consumes[0]


def _openapi_responses(doc: dict, responses: Any, label: str) -> dict[str, ResponseSpec]:
    result = {}
    for status_code, resp in _mapping(responses, f"Responses of {label}").items():
        resp = _mapping(_deref(doc, resp), f"Response {status_code} of {label}")
        content_type, media = _pick_media(_mapping(resp.get("content"), f"Content of response {status_code}"))
        has_example, example = _media_example(doc, media)
        result[str(status_code)] = ResponseSpec(
            status=str(status_code),
            description=resp.get("description", ""),
            content_type=content_type,
            body_schema=media.get("schema"),
            example=example,
            has_example=has_example,
            headers={
                name: _header_schema(doc, header)
                for name, header in _mapping(resp.get("headers"), f"Headers of response {status_code}").items()
            },
        )
    return result


def _swagger_responses(doc: dict, operation: dict, label: str) -> dict[str, ResponseSpec]:
    produces = _sequence(operation.get("produces") or doc.get("produces"), "'produces'") or ["application/json"]
    result = {}
    for status_code, resp in _mapping(operation.get("responses"), f"Responses of {label}").items():
        resp = _mapping(_deref(doc, resp), f"Response {status_code} of {label}")
        examples = _mapping(resp.get("examples"), f"Examples of response {status_code}")
        content_type = next((ct for ct in produces if ct in examples), produces[0])
        has_example = content_type in examples
        result[str(status_code)] = ResponseSpec(
            status=str(status_code),
            description=resp.get("description", ""),
            content_type=content_type if resp.get("schema") or has_example else None,
            body_schema=resp.get("schema"),
            example=examples.get(content_type),
            has_example=has_example,
            headers=dict(_mapping(resp.get("headers"), f"Headers of response {status_code}")),
        )
    return result


def _media_example(doc: dict, media: dict) -> tuple[bool, Any]:
    if "example" in media:
        return True, media["example"]
    examples = _mapping(media.get("examples"), "'examples'")
    for example in examples.values():
        example = _deref(doc, example)
        if isinstance(example, dict) and "value" in example:
            return True, example["value"]
    return False, None


def _header_schema(doc: dict, header: dict) -> dict:
    header = _mapping(_deref(doc, header), "Header")
    schema = dict(_mapping(header.get("schema"), "Header schema"))
    if "example" in header:
        schema["example"] = header["example"]
    return schema


def _parse_schemas(doc: dict, version: str) -> dict[str, SchemaDef]:
    if version == "swagger":
        raw = _mapping(doc.get("definitions"), "'definitions'")
    else:
        raw = _mapping(_mapping(doc.get("components"), "'components'").get("schemas"), "'components.schemas'")

    schemas = {}
    for name, definition in raw.items():
        if not isinstance(definition, dict):
            raise DocumentError(f"Schema {name} must be a mapping")
        seed_script = definition.get("x-seed")
        if seed_script is not None and not isinstance(seed_script, str):
            raise DocumentError(f"x-seed of schema {name} must be a string")
        schemas[name] = SchemaDef(name=name, definition=definition, seed_script=seed_script)
    return schemas


def _parse_security_schemes(doc: dict, version: str) -> dict[str, SecurityScheme]:
    if version == "swagger":
        raw = _mapping(doc.get("securityDefinitions"), "'securityDefinitions'")
    else:
        components = _mapping(doc.get("components"), "'components'")
        raw = _mapping(components.get("securitySchemes"), "'components.securitySchemes'")

    schemes = {}
    for name, scheme in raw.items():
        scheme = _mapping(_deref(doc, scheme), f"Security scheme {name}")
        scheme_type = scheme.get("type", "")
        if scheme_type == "basic":
            schemes[name] = SecurityScheme(name=name, type="http", scheme="basic")
        elif version == "swagger" and scheme_type == "oauth2":
            flow = _SWAGGER_FLOWS.get(scheme.get("flow", ""), scheme.get("flow", ""))
            details = {k: scheme[k] for k in ("authorizationUrl", "tokenUrl", "scopes") if k in scheme}
            schemes[name] = SecurityScheme(name=name, type="oauth2", flows={flow: details})
        else:
            schemes[name] = SecurityScheme(
                name=name,
                type=scheme_type,
                scheme=(scheme.get("scheme") or "").lower() or None,
                location=scheme.get("in"),
                param_name=scheme.get("name"),
                bearer_format=scheme.get("bearerFormat"),
                flows=scheme.get("flows") or {},
            )
    return schemes


_SWAGGER_FLOWS = {
    "implicit": "implicit",
    "password": "password",
    "application": "clientCredentials",
    "accessCode": "authorizationCode",
}
