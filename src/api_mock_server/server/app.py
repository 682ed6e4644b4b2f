"""Mock server application: lifecycle, dispatch, and the ASGI app factory."""

import asyncio
import contextlib
import inspect
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic_core import to_jsonable_python
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.engine.handler import (
    JSON_CONTENT_TYPE,
    MockResponse,
    RequestView,
    execute_handler,
    static_response,
)
from api_mock_server.engine.security import Credentials, challenge, validate_security
from api_mock_server.engine.seed import SeedOutcome, seed_store
from api_mock_server.engine.store import Store
from api_mock_server.errors import AuthError
from api_mock_server.parser.base import ApiDocument, Operation
from api_mock_server.parser.openapi import parse_document
from api_mock_server.server.builtin import document_routes, oauth_routes
from api_mock_server.server.routes import RouteEntry, synthesize_routes

logger = logging.getLogger(__name__)

RequestHook = Callable[[Request, Operation], Awaitable[None] | None]

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
ALL_METHODS = ["GET", "PUT", "POST", "DELETE", "OPTIONS", "HEAD", "PATCH", "TRACE"]


class MockServer:
    """Owns the document, the store and everything a request needs."""

    def __init__(
        self,
        document: ApiDocument,
        store: Store | None = None,
        faker: FakeDataGenerator | None = None,
        on_request: RequestHook | None = None,
    ):
        self.document = document
        self.owns_store = store is None
        self.store = store if store is not None else Store()
        self.faker = faker or FakeDataGenerator()
        self.on_request = on_request
        self.routes = synthesize_routes(document)
        self.seed_outcomes: list[SeedOutcome] = []
        # one handler script at a time, so a script's store calls are never interleaved
        self._handler_lock = asyncio.Lock()

    async def startup(self) -> list[SeedOutcome]:
        """Seed the store. Must complete before requests are accepted."""
        self.seed_outcomes = await seed_store(self.document, self.store, self.faker)
        return self.seed_outcomes

    async def shutdown(self) -> None:
        if self.owns_store:
            self.store.clear()

    def build_app(self, cors: bool = True) -> Starlette:
        routes = [Route(entry.route_path, self._endpoint(entry), methods=ALL_METHODS) for entry in self.routes]
        taken = {entry.route_path for entry in self.routes}
        routes += [r for r in document_routes(self.document) if r.path not in taken]
        routes += oauth_routes(self.document, self.faker, taken)

        middleware = []
        if cors:
            middleware.append(
                Middleware(
                    CORSMiddleware,
                    allow_origins=["*"],
                    allow_methods=["*"],
                    allow_headers=["*"],
                    expose_headers=["*"],
                )
            )

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette):
            await self.startup()
            logger.info("Serving %d operations", len(self.document.operations))
            yield
            await self.shutdown()

        app = Starlette(
            routes=routes,
            middleware=middleware,
            exception_handlers={404: _not_found, 405: _not_found},
            lifespan=lifespan,
        )
        app.state.mock_server = self
        return app

    def _endpoint(self, entry: RouteEntry):
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(request, entry)

        return endpoint

    async def dispatch(self, request: Request, entry: RouteEntry) -> Response:
        operation = entry.operation_for(request.method)
        if operation is None:
            return Response(status_code=404)
        logger.debug("%s %s -> %s", request.method, request.url.path, operation.label)

        await self._observe(request, operation)

        try:
            validate_security(
                operation.security,
                self.document.security_schemes,
                Credentials(request.headers, request.query_params, request.cookies),
            )
        except AuthError as e:
            return render(self._unauthorized(operation, e))

        view = await read_request(request, entry, operation)
        if operation.has_handler:
            async with self._handler_lock:
                result = await execute_handler(operation, view, self.store, self.faker)
        else:
            result = static_response(operation, self.document, self.faker)
        return render(result)

    async def _observe(self, request: Request, operation: Operation) -> None:
        if self.on_request is None:
            return
        try:
            outcome = self.on_request(request, operation)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning("on_request hook failed for %s", operation.label, exc_info=True)

    def _unauthorized(self, operation: Operation, error: AuthError) -> MockResponse:
        headers = {}
        value = challenge(operation.security, self.document.security_schemes)
        if value:
            headers["WWW-Authenticate"] = value

        spec = operation.responses.get("401")
        if spec is not None and spec.has_example:
            return MockResponse(
                status_code=401,
                body=spec.example,
                content_type=spec.content_type or JSON_CONTENT_TYPE,
                headers=headers,
            )
        return MockResponse(
            status_code=401,
            body={"error": "Unauthorized", "message": error.reason},
            headers=headers,
        )


def create_mock_server(
    document: str | bytes | dict | ApiDocument,
    *,
    on_request: RequestHook | None = None,
    store: Store | None = None,
    faker: FakeDataGenerator | None = None,
    seed: int | None = None,
    cors: bool = True,
) -> Starlette:
    """Build an ASGI app serving mocked routes for an OpenAPI/Swagger document.

    Raises DocumentError if the document cannot be parsed. Seeding runs in
    the app's lifespan startup, before the first request is handled.
    """
    if not isinstance(document, ApiDocument):
        document = parse_document(document)
    if faker is None:
        faker = FakeDataGenerator(seed=seed)
    server = MockServer(document, store=store, faker=faker, on_request=on_request)
    return server.build_app(cors=cors)


async def read_request(request: Request, entry: RouteEntry, operation: Operation) -> RequestView:
    """Build the ``req`` view handed to handler scripts."""
    query: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        query[key] = values[0] if len(values) == 1 else values

    return RequestView(
        method=request.method,
        path=request.url.path,
        body=await _read_body(request),
        params=entry.path_params(operation, request.path_params),
        query=query,
        headers={k.lower(): v for k, v in request.headers.items()},
        cookies=dict(request.cookies),
    )


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == JSON_CONTENT_TYPE or content_type.endswith("+json"):
        try:
            return json.loads(raw)
        except ValueError:
            return raw.decode("utf-8", errors="replace")
    if content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        return {key: _form_value(value) for key, value in form.multi_items()}
    return raw.decode("utf-8", errors="replace")


def _form_value(value: Any) -> Any:
    if isinstance(value, str):
        return value
    # uploaded file
    return {"filename": value.filename, "content_type": value.content_type, "size": value.size}


def render(result: MockResponse) -> Response:
    """Turn a MockResponse into a Starlette response."""
    if result.empty:
        return Response(status_code=result.status_code, headers=result.headers)

    content_type = result.content_type or JSON_CONTENT_TYPE
    base = content_type.split(";")[0].strip().lower()
    json_like = base == JSON_CONTENT_TYPE or base.endswith("+json")
    if isinstance(result.body, str) and not json_like and base != "*/*":
        return Response(result.body, status_code=result.status_code, media_type=content_type, headers=result.headers)
    return JSONResponse(
        to_jsonable_python(result.body),
        status_code=result.status_code,
        media_type=content_type if json_like else JSON_CONTENT_TYPE,
        headers=result.headers,
    )


async def _not_found(request: Request, exc: Exception) -> Response:
    return Response(status_code=404)
