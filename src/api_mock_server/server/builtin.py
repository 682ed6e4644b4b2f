"""Routes the server exposes besides the document's own operations.

- /openapi.json and /openapi.yaml render the document itself.
- OAuth2 token and authorization endpoints answer with fake tokens, so
  clients can run a complete login flow against the mock.
"""

import logging
from urllib.parse import urlencode, urlparse

import yaml
from pydantic_core import to_jsonable_python
from starlette.datastructures import URL
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.parser.base import ApiDocument

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = 3600


def document_routes(document: ApiDocument) -> list[Route]:
    async def openapi_json(request: Request) -> Response:
        # YAML documents may carry dates and other non-JSON scalars
        return JSONResponse(to_jsonable_python(document.raw))

    async def openapi_yaml(request: Request) -> Response:
        text = yaml.safe_dump(document.raw, sort_keys=False, allow_unicode=True)
        return Response(text, media_type="application/yaml")

    return [
        Route("/openapi.json", openapi_json, methods=["GET"]),
        Route("/openapi.yaml", openapi_yaml, methods=["GET"]),
    ]


def oauth_routes(document: ApiDocument, faker: FakeDataGenerator, taken: set[str]) -> list[Route]:
    """Token and authorization endpoints for every declared OAuth2 flow.

    Paths in ``taken`` belong to the document and are left alone.
    """
    token_paths: dict[str, list[str]] = {}
    authorize_paths: dict[str, list[str]] = {}
    for scheme in document.security_schemes.values():
        if scheme.type != "oauth2":
            continue
        for flow in scheme.flows.values():
            scopes = list((flow.get("scopes") or {}).keys())
            if flow.get("tokenUrl"):
                token_paths.setdefault(_url_path(flow["tokenUrl"]), []).extend(scopes)
            if flow.get("authorizationUrl"):
                authorize_paths.setdefault(_url_path(flow["authorizationUrl"]), []).extend(scopes)

    routes = []
    for path, scopes in token_paths.items():
        if path not in taken:
            routes.append(Route(path, _token_endpoint(faker, scopes), methods=["POST"]))
    for path, scopes in authorize_paths.items():
        if path not in taken and path not in token_paths:
            routes.append(Route(path, _authorize_endpoint(faker, scopes), methods=["GET"]))
    if routes:
        logger.info("Mock OAuth2 endpoints: %s", ", ".join(r.path for r in routes))
    return routes


def issue_token(faker: FakeDataGenerator, scope: str) -> dict:
    return {
        "access_token": _token(faker),
        "token_type": "Bearer",
        "expires_in": TOKEN_LIFETIME,
        "refresh_token": _token(faker),
        "scope": scope,
    }


def _token_endpoint(faker: FakeDataGenerator, scopes: list[str]):
    async def token(request: Request) -> Response:
        scope = " ".join(scopes)
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith("multipart/"):
            form = await request.form()
            scope = form.get("scope") or scope
        elif content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = {}
            if isinstance(body, dict):
                scope = body.get("scope") or scope
        return JSONResponse(issue_token(faker, scope), headers={"Cache-Control": "no-store"})

    return token


def _authorize_endpoint(faker: FakeDataGenerator, scopes: list[str]):
    async def authorize(request: Request) -> Response:
        params = request.query_params
        redirect_uri = params.get("redirect_uri")
        if not redirect_uri:
            return JSONResponse(
                {"error": "invalid_request", "error_description": "redirect_uri is required"},
                status_code=400,
            )

        state = params.get("state")
        if params.get("response_type") == "token":
            fragment = {
                "access_token": _token(faker),
                "token_type": "Bearer",
                "expires_in": TOKEN_LIFETIME,
                "scope": params.get("scope") or " ".join(scopes),
            }
            if state:
                fragment["state"] = state
            return RedirectResponse(str(URL(redirect_uri).replace(fragment=urlencode(fragment))), status_code=302)

        query = {"code": _token(faker)}
        if state:
            query["state"] = state
        return RedirectResponse(str(URL(redirect_uri).include_query_params(**query)), status_code=302)

    return authorize


def _token(faker: FakeDataGenerator) -> str:
    return faker.uuid().replace("-", "")


def _url_path(url: str) -> str:
    path = urlparse(url).path or "/"
    return path if path.startswith("/") else f"/{path}"
