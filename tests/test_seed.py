import asyncio
import logging
from pathlib import Path

import pytest

from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.engine.seed import SeedHelper, seed_schema, seed_store
from api_mock_server.engine.store import Store
from api_mock_server.parser.openapi import parse_document

FIXTURES = Path(__file__).parent / "fixtures"


def _doc_with_seeds(**seeds):
    return parse_document({
        "openapi": "3.0.0",
        "paths": {},
        "components": {"schemas": {name: {"type": "object", "x-seed": source} for name, source in seeds.items()}},
    })


def _seed(document, store):
    return asyncio.run(seed_store(document, store, FakeDataGenerator(seed=3)))


class TestSeedHelper:
    def test_list_form(self):
        store = Store()
        created = SeedHelper(store, "Post")([{"title": "a"}, {"title": "b"}])
        assert len(created) == 2
        assert store.count("Post") == 2

    def test_factory_form(self):
        store = Store()
        created = SeedHelper(store, "Post")(lambda: {"title": "a"})
        assert len(created) == 1
        assert created[0]["id"]

    def test_count_form_returns_records(self):
        store = Store()
        created = SeedHelper(store, "Post").count(4, lambda: {"title": "a"})
        assert [r["id"] for r in created] == [r["id"] for r in store.list("Post")]

    def test_rejects_non_objects(self):
        with pytest.raises(TypeError):
            SeedHelper(Store(), "Post")(["not an object"])
        with pytest.raises(TypeError):
            SeedHelper(Store(), "Post")(42)


class TestSeedStore:
    def test_fixture_seeds_three_posts(self):
        document = parse_document((FIXTURES / "blog.yaml").read_text())
        store = Store()
        outcomes = _seed(document, store)
        assert len(store.list("Post")) == 3
        assert [o.schema_name for o in outcomes] == ["Post"]
        assert outcomes[0].status == "seeded"
        assert outcomes[0].created == 3

    def test_second_run_is_a_no_op(self):
        document = _doc_with_seeds(Post="seed.count(3, lambda: {'title': faker.sentence()})")
        store = Store()
        _seed(document, store)
        outcomes = _seed(document, store)
        assert store.count("Post") == 3
        assert outcomes[0].status == "skipped"

    def test_cleared_collection_is_seeded_again(self):
        document = _doc_with_seeds(Post="seed([{'title': 'a'}])")
        store = Store()
        _seed(document, store)
        store.clear("Post")
        _seed(document, store)
        assert store.count("Post") == 1

    def test_schema_name_available(self):
        document = _doc_with_seeds(Tag="seed([{'label': schema}])")
        store = Store()
        _seed(document, store)
        assert store.list("Tag")[0]["label"] == "Tag"

    def test_later_schema_reads_earlier_collection(self):
        document = _doc_with_seeds(
            User="seed.count(2, lambda: {'name': faker.name()})",
            Post="users = store.list('User')\nseed.count(4, lambda: {'authorId': faker.pick(users)['id']})",
        )
        store = Store()
        _seed(document, store)
        user_ids = {u["id"] for u in store.list("User")}
        assert {p["authorId"] for p in store.list("Post")} <= user_ids

    def test_failure_keeps_partial_state_and_continues(self, caplog):
        document = _doc_with_seeds(
            Broken="seed([{'n': 1}])\nraise RuntimeError('boom')",
            Fine="seed([{'n': 1}])",
        )
        store = Store()
        with caplog.at_level(logging.WARNING):
            outcomes = _seed(document, store)
        by_name = {o.schema_name: o for o in outcomes}
        assert by_name["Broken"].status == "failed"
        assert by_name["Broken"].error == "boom"
        assert store.count("Broken") == 1
        assert by_name["Fine"].status == "seeded"
        assert "Seeding Broken failed" in caplog.text

    def test_syntax_error_is_reported_not_raised(self):
        store = Store()
        outcome = asyncio.run(seed_schema("Post", "seed(", store, FakeDataGenerator()))
        assert outcome.status == "failed"
        assert store.count("Post") == 0
