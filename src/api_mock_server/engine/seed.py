"""Seeding of collections from x-seed scripts.

Each schema with an ``x-seed`` script populates the collection named
after the schema, once: a collection that already holds records is
skipped. Failures are logged and reported, never raised, so a broken
seed script cannot keep the server from starting.
"""

import logging
from typing import Any, Callable

from pydantic import BaseModel

from api_mock_server.engine.fake_data import FakeDataGenerator
from api_mock_server.engine.script import Script
from api_mock_server.engine.store import Store
from api_mock_server.errors import SeedError
from api_mock_server.parser.base import ApiDocument

logger = logging.getLogger(__name__)

SEED_CONTEXT = ("store", "faker", "seed", "schema")


class SeedOutcome(BaseModel):
    """Result of seeding one schema."""

    schema_name: str
    status: str  # seeded / skipped / failed
    created: int = 0
    error: str | None = None


class SeedHelper:
    """The ``seed`` callable handed to seed scripts.

    seed([{...}, {...}])      -> one record per element
    seed(factory)             -> seed.count(1, factory)
    seed.count(n, factory)    -> n records, one per factory() call
    """

    def __init__(self, store: Store, collection: str):
        self.store = store
        self.collection = collection
        self.created = 0

    def __call__(self, items: list | dict | Callable[[], dict]) -> list[dict]:
        if callable(items):
            return self.count(1, items)
        if isinstance(items, dict):
            items = [items]
        if not isinstance(items, (list, tuple)):
            raise TypeError("seed() expects a list of objects or a factory function")
        return [self._create(item) for item in items]

    def count(self, n: int, factory: Callable[[], dict]) -> list[dict]:
        if not callable(factory):
            raise TypeError("seed.count() expects a factory function")
        return [self._create(factory()) for _ in range(int(n))]

    def _create(self, item: Any) -> dict:
        if not isinstance(item, dict):
            raise TypeError(f"seed records must be objects, got {type(item).__name__}")
        record = self.store.create(self.collection, item)
        self.created += 1
        return record


async def seed_store(document: ApiDocument, store: Store, faker: FakeDataGenerator) -> list[SeedOutcome]:
    """Run every schema's seed script against the store, in declaration order."""
    outcomes = []
    for schema in document.schemas.values():
        if schema.seed_script is None:
            continue
        outcomes.append(await seed_schema(schema.name, schema.seed_script, store, faker))

    seeded = [o.schema_name for o in outcomes if o.status == "seeded"]
    if seeded:
        logger.info("Seeded collections: %s", ", ".join(seeded))
    return outcomes


async def seed_schema(name: str, source: str, store: Store, faker: FakeDataGenerator) -> SeedOutcome:
    """Seed one collection unless it already holds records."""
    if store.list(name):
        logger.debug("Collection %s is not empty, skipping seed", name)
        return SeedOutcome(schema_name=name, status="skipped")

    helper = SeedHelper(store, name)
    try:
        script = Script.compile(f"x-seed {name}", source, SEED_CONTEXT)
        await script.run(store=store, faker=faker, seed=helper, schema=name)
    except Exception as e:
        return _failed(name, helper, SeedError(name, e))

    return SeedOutcome(schema_name=name, status="seeded", created=helper.created)


def _failed(name: str, helper: SeedHelper, error: SeedError) -> SeedOutcome:
    logger.warning("%s (%d records created before the failure)", error, helper.created)
    return SeedOutcome(schema_name=name, status="failed", created=helper.created, error=str(error.cause))
