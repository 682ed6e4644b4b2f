import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
import yaml
from starlette.testclient import TestClient

from api_mock_server import create_mock_server
from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.engine.store import Store
from api_mock_server.errors import DocumentError

FIXTURES = Path(__file__).parent / "fixtures"
BLOG = (FIXTURES / "blog.yaml").read_text()
PETSTORE = (FIXTURES / "petstore.json").read_text()
AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def client():
    with TestClient(create_mock_server(BLOG, seed=1)) as client:
        yield client


class TestSeeding:
    def test_seeded_before_first_request(self, client):
        response = client.get("/posts")
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_restart_with_fresh_store_seeds_three_again(self):
        for _ in range(2):
            with TestClient(create_mock_server(BLOG)) as client:
                assert len(client.get("/posts").json()) == 3

    def test_restart_with_same_store_does_not_reseed(self):
        store = Store()
        for _ in range(2):
            with TestClient(create_mock_server(BLOG, store=store)) as client:
                assert len(client.get("/posts").json()) == 3
        assert store.count("Post") == 3

    def test_owned_store_cleared_on_shutdown(self):
        app = create_mock_server(BLOG)
        with TestClient(app):
            pass
        assert app.state.mock_server.store.list("Post") == []


class TestCrud:
    def test_create_get_delete(self, client):
        created = client.post("/posts", json={"title": "Hello"}, headers=AUTH)
        assert created.status_code == 201
        post = created.json()
        assert post["title"] == "Hello"
        assert post["id"]

        fetched = client.get(f"/posts/{post['id']}")
        assert fetched.status_code == 200
        assert fetched.json() == post

        deleted = client.delete(f"/posts/{post['id']}")
        assert deleted.status_code == 204
        assert deleted.content == b""

        missing = client.get(f"/posts/{post['id']}")
        assert missing.status_code == 404
        assert missing.content == b""

    def test_update(self, client):
        post = client.get("/posts").json()[0]
        response = client.patch(f"/posts/{post['id']}", json={"title": "Edited"})
        assert response.status_code == 200
        assert response.json()["title"] == "Edited"
        assert response.json()["id"] == post["id"]

    def test_update_missing(self, client):
        assert client.patch("/posts/nope", json={"title": "x"}).status_code == 404

    def test_list_grows(self, client):
        client.post("/posts", json={"title": "New"}, headers=AUTH)
        assert len(client.get("/posts").json()) == 4

    def test_handler_error(self, client):
        response = client.post("/posts", json={}, headers=AUTH)
        assert response.status_code == 500
        assert response.json() == {"error": "Handler execution failed", "message": "Title is required"}


class TestSecurity:
    def test_missing_bearer_is_401_without_side_effects(self, client):
        response = client.post("/posts", json={"title": "Sneaky"})
        assert response.status_code == 401
        assert response.json() == {"error": "Please sign in"}
        assert response.headers["www-authenticate"] == "Bearer"
        assert len(client.get("/posts").json()) == 3

    def test_generic_401_body(self, client):
        response = client.get("/reports")
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_any_alternative_passes(self, client):
        response = client.get("/reports", headers={"X-API-Key": "secret"})
        assert response.status_code == 200
        assert response.text == "all good"
        assert response.headers["content-type"].startswith("text/plain")


class TestStaticResponses:
    def test_literal_route_beats_placeholder(self, client):
        response = client.get("/posts/latest")
        assert response.status_code == 200
        assert response.json() == {"id": "latest", "title": "Hello"}

    def test_schema_synthesized(self, client):
        response = client.get("/authors")
        assert response.status_code == 200
        authors = response.json()
        assert isinstance(authors, list)
        assert "@" in authors[0]["email"]
        assert response.headers["x-total-count"] == "2"

    def test_handler_reads_examples(self, client):
        assert client.get("/stats").json() == {"posts": 42, "since": "2024-01-01"}

    def test_head_served_by_get(self, client):
        assert client.head("/posts/latest").status_code == 200


class TestNotFound:
    def test_unknown_path(self, client):
        response = client.get("/nothing/here")
        assert response.status_code == 404
        assert response.content == b""

    def test_undeclared_method(self, client):
        response = client.put("/posts", json={})
        assert response.status_code == 404
        assert response.content == b""


class TestBuiltinRoutes:
    def test_openapi_json(self, client):
        response = client.get("/openapi.json")
        assert response.status_code == 200
        assert response.json()["info"]["title"] == "Blog API"

    def test_openapi_yaml(self, client):
        response = client.get("/openapi.yaml")
        assert response.headers["content-type"].startswith("application/yaml")
        assert yaml.safe_load(response.text) == yaml.safe_load(BLOG)

    def test_cors(self, client):
        response = client.get("/posts", headers={"Origin": "http://localhost:5173"})
        assert response.headers["access-control-allow-origin"] == "*"


class TestRequestHook:
    def test_called_before_security(self):
        hook = MagicMock(return_value=None)
        with TestClient(create_mock_server(BLOG, on_request=hook)) as client:
            client.post("/posts", json={"title": "x"})
        hook.assert_called_once()
        request, operation = hook.call_args.args
        assert request.method == "POST"
        assert operation.label == "POST /posts"

    def test_failing_hook_does_not_change_response(self):
        def hook(request, operation):
            raise RuntimeError("broken hook")

        with TestClient(create_mock_server(BLOG, on_request=hook)) as client:
            assert client.get("/posts").status_code == 200


class TestSwaggerDocument:
    def test_seeded_and_static(self):
        with TestClient(create_mock_server(PETSTORE)) as client:
            response = client.get("/pets/1")
            assert response.json() == {"id": 1, "name": "Rex", "tag": "dog"}

    def test_oauth_token_then_create(self):
        app = create_mock_server(PETSTORE)
        with TestClient(app) as client:
            assert client.post("/pets", json={"name": "Kit"}).status_code == 401

            token = client.post("/oauth/token", data={"grant_type": "client_credentials"}).json()
            assert token["token_type"] == "Bearer"
            assert token["scope"] == "write:pets read:pets"

            response = client.post(
                "/pets", json={"name": "Kit"}, headers={"Authorization": f"Bearer {token['access_token']}"}
            )
            assert response.status_code == 201
            assert app.state.mock_server.store.count("Pet") == 3

    def test_oauth_authorize_redirects_with_code(self):
        with TestClient(create_mock_server(PETSTORE)) as client:
            response = client.get(
                "/oauth/authorize",
                params={"redirect_uri": "http://localhost/callback", "state": "xyz", "response_type": "code"},
                follow_redirects=False,
            )
            assert response.status_code == 302
            location = response.headers["location"]
            assert location.startswith("http://localhost/callback?")
            assert "code=" in location and "state=xyz" in location

    def test_oauth_authorize_requires_redirect_uri(self):
        with TestClient(create_mock_server(PETSTORE)) as client:
            assert client.get("/oauth/authorize").status_code == 400


class TestRouteCollisions:
    def test_last_declared_wins_with_its_own_param_names(self):
        document = {
            "openapi": "3.0.0",
            "paths": {
                "/items/{id}": {"get": {"x-handler": "return {'first': id}", "responses": {}}},
                "/items/{itemId}": {"get": {"x-handler": "return {'second': itemId}", "responses": {}}},
            },
        }
        with TestClient(create_mock_server(document)) as client:
            assert client.get("/items/5").json() == {"second": "5"}

    def test_invalid_placeholder_names(self):
        document = {
            "openapi": "3.0.0",
            "paths": {"/things/{thing-id}": {"get": {"x-handler": "return req.params", "responses": {}}}},
        }
        with TestClient(create_mock_server(document)) as client:
            assert client.get("/things/abc").json() == {"thing-id": "abc"}


class TestStartupErrors:
    def test_bad_document_raises(self):
        with pytest.raises(DocumentError):
            create_mock_server("not: [valid")

    def test_broken_seed_does_not_prevent_startup(self):
        document = {
            "openapi": "3.0.0",
            "paths": {"/ping": {"get": {"x-handler": "return 'pong'", "responses": {}}}},
            "components": {"schemas": {"Post": {"x-seed": "raise ValueError('nope')"}}},
        }
        with TestClient(create_mock_server(document)) as client:
            assert client.get("/ping").json() == "pong"

    def test_broken_handler_only_breaks_its_route(self):
        document = {
            "openapi": "3.0.0",
            "paths": {
                "/ping": {"get": {"x-handler": "return 'pong'", "responses": {}}},
                "/broken": {"get": {"x-handler": "return (", "responses": {}}},
            },
        }
        with TestClient(create_mock_server(document)) as client:
            assert client.get("/ping").json() == "pong"
            response = client.get("/broken")
            assert response.status_code == 500
            assert response.json()["error"] == "Handler execution failed"


class SlowFaker(FakeDataGenerator):
    async def pause(self):
        await asyncio.sleep(0.01)


class TestHandlerConcurrency:
    def test_handlers_do_not_interleave(self):
        document = {
            "openapi": "3.0.0",
            "paths": {
                "/hits": {
                    "post": {
                        "x-handler": (
                            "seen = len(store.list('Hit'))\n"
                            "await faker.pause()\n"
                            "return store.create('Hit', {'seen': seen})"
                        ),
                        "responses": {},
                    }
                }
            },
        }
        store = Store()
        app = create_mock_server(document, store=store, faker=SlowFaker(seed=1))

        async def hit_twice():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                return await asyncio.gather(client.post("/hits"), client.post("/hits"))

        responses = asyncio.run(hit_twice())
        assert [r.status_code for r in responses] == [201, 201]
        assert sorted(record["seen"] for record in store.list("Hit")) == [0, 1]
