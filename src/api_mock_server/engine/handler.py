"""Execution of x-handler scripts and the static example responder.

The status of a handler response is inferred from where its return value
came from: the handler's store view tags every result with the store
method that produced it.

    get/update/delete -> None   404
    create                      201
    delete -> record            204, empty body
    anything else               200
"""

import json
import logging
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from api_mock_server.engine.examples import build_example
from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.engine.store import Store, TrackedStore
from api_mock_server.errors import HandlerError, describe_exception
from api_mock_server.parser.base import ApiDocument, Operation, ResponseSpec

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class RequestView(BaseModel):
    """The request as handler scripts see it (``req``)."""

    method: str
    path: str
    body: Any = None
    params: dict[str, str] = {}
    query: dict[str, Any] = {}
    headers: dict[str, str] = {}
    cookies: dict[str, str] = {}


class MockResponse(BaseModel):
    """Status, body and headers to send back, independent of the transport."""

    status_code: int
    body: Any = None
    empty: bool = False
    content_type: str = JSON_CONTENT_TYPE
    headers: dict[str, str] = {}


def response_examples(operation: Operation) -> dict[str, Any]:
    """Declared example bodies by status code (``res``)."""
    return {status: spec.example for status, spec in operation.responses.items() if spec.has_example}


async def execute_handler(
    operation: Operation,
    request: RequestView,
    store: Store,
    faker: FakeDataGenerator,
) -> MockResponse:
    """Run the operation's handler script and turn its result into a response."""
    if operation.handler_error is not None:
        return handler_failure(HandlerError(operation.handler_error))

    tracked = TrackedStore(store)
    shortcuts = {name: request.params.get(name) for name in operation.handler.params}
    try:
        result = await operation.handler.run(
            **{
                **shortcuts,
                "store": tracked,
                "faker": faker,
                "req": request,
                "res": response_examples(operation),
            }
        )
        response = infer_response(result, tracked)
        response.body = _jsonable(response.body)
    except HandlerError as e:
        logger.warning("%s: %s", operation.label, e.message)
        return handler_failure(e)
    except Exception as e:
        logger.warning("Handler for %s raised", operation.label, exc_info=True)
        return handler_failure(HandlerError(describe_exception(e)))
    return response


def infer_response(result: Any, tracked: TrackedStore) -> MockResponse:
    """Map a handler's return value to a status code."""
    call = tracked.origin_of(result)
    origin = call.origin if call else None

    if result is None and origin in (None, "get", "update", "delete"):
        # a bare None is treated like a failed lookup
        return MockResponse(status_code=404, body=None, empty=True)
    if origin == "create":
        return MockResponse(status_code=201, body=result)
    if origin == "delete":
        return MockResponse(status_code=204, empty=True)
    return MockResponse(status_code=200, body=result)


def handler_failure(error: HandlerError) -> MockResponse:
    return MockResponse(status_code=500, body=error.to_body())


def static_response(operation: Operation, document: ApiDocument, faker: FakeDataGenerator) -> MockResponse:
    """Respond with the lowest declared success status and its example."""
    spec = _success_response(operation)
    if spec is None:
        return MockResponse(status_code=200, empty=True)

    status_code = 200 if spec.status == "default" else int(spec.status)
    headers = _example_headers(spec, document, faker)
    if status_code == 204 or not (spec.has_example or spec.body_schema):
        return MockResponse(status_code=status_code, empty=True, headers=headers)

    body = example_body(spec, document, faker)
    return MockResponse(
        status_code=status_code,
        body=body,
        content_type=spec.content_type or JSON_CONTENT_TYPE,
        headers=headers,
    )


def example_body(spec: ResponseSpec, document: ApiDocument, faker: FakeDataGenerator) -> Any:
    """The literal example of a response, or one built from its schema."""
    if spec.has_example:
        return spec.example
    return build_example(spec.body_schema, faker, document.resolve_ref)


def _success_response(operation: Operation) -> ResponseSpec | None:
    success = sorted(
        (spec for status, spec in operation.responses.items() if status.isdigit() and 200 <= int(status) < 300),
        key=lambda spec: int(spec.status),
    )
    if success:
        return success[0]
    # 2XX range keys and default stand in when no concrete code is declared
    for key in ("2XX", "2xx", "default"):
        if key in operation.responses:
            spec = operation.responses[key]
            return spec.model_copy(update={"status": "200"}) if key != "default" else spec
    return None


def _example_headers(spec: ResponseSpec, document: ApiDocument, faker: FakeDataGenerator) -> dict[str, str]:
    headers = {}
    for name, schema in spec.headers.items():
        if name.lower() == "content-type":
            continue
        value = build_example(schema, faker, document.resolve_ref, name)
        if value is not None:
            headers[name] = value if isinstance(value, str) else json.dumps(value)
    return headers


def _jsonable(body: Any) -> Any:
    """Normalize dates and other non-JSON scalars, rejecting what cannot be sent."""
    try:
        body = to_jsonable_python(body)
        json.dumps(body, allow_nan=False)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise HandlerError(f"Handler returned a value that cannot be serialized to JSON: {e}") from e
    return body
