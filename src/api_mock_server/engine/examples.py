"""Example values synthesized from JSON schemas.

Used by the static responder when a response declares a schema but no
literal example. Precedence per node: example -> default -> const ->
enum[0] -> generated value by type/format.
"""

from typing import Any, Callable

from api_mock_server.engine.fake_data import FakeDataGenerator

MAX_DEPTH = 8

Resolver = Callable[[str], Any]

# format -> generator
FORMATS: dict[str, Callable[[FakeDataGenerator], Any]] = {
    "uuid": lambda f: f.uuid(),
    "email": lambda f: f.email(),
    "date-time": lambda f: f.date_time(),
    "date": lambda f: f.date(),
    "time": lambda f: f.time(),
    "uri": lambda f: f.url(),
    "url": lambda f: f.url(),
    "hostname": lambda f: f.domain(),
    "ipv4": lambda f: f.ipv4(),
    "ipv6": lambda f: f.ipv6(),
    "password": lambda f: f.password(),
    "byte": lambda f: "aGVsbG8gd29ybGQ=",
    "binary": lambda f: "",
}

# property name hints for strings without a format
NAME_HINTS: dict[str, Callable[[FakeDataGenerator], Any]] = {
    "id": lambda f: f.uuid(),
    "email": lambda f: f.email(),
    "name": lambda f: f.name(),
    "firstname": lambda f: f.first_name(),
    "lastname": lambda f: f.last_name(),
    "username": lambda f: f.username(),
    "title": lambda f: f.sentence(4).rstrip("."),
    "description": lambda f: f.paragraph(2),
    "content": lambda f: f.paragraph(),
    "body": lambda f: f.paragraph(),
    "bio": lambda f: f.bio(),
    "url": lambda f: f.url(),
    "avatar": lambda f: f.avatar(),
    "phone": lambda f: f.phone(),
    "city": lambda f: f.city(),
    "country": lambda f: f.country(),
    "address": lambda f: f.street_address(),
    "slug": lambda f: f.slug(),
}


def build_example(
    schema: dict | None,
    faker: FakeDataGenerator,
    resolve: Resolver | None = None,
    name: str | None = None,
    _depth: int = 0,
    _seen: frozenset = frozenset(),
) -> Any:
    """Build an example value for ``schema``.

    ``resolve`` follows local ``$ref`` pointers. Recursive references are
    cut off (returning None) instead of expanding forever.
    """
    if not isinstance(schema, dict) or _depth > MAX_DEPTH:
        return None

    if "$ref" in schema:
        ref = schema["$ref"]
        if ref in _seen or resolve is None:
            return None
        return build_example(resolve(ref), faker, resolve, name, _depth + 1, _seen | {ref})

    for key in ("example", "default", "const"):
        if key in schema:
            return schema[key]
    if schema.get("examples") and isinstance(schema["examples"], list):
        return schema["examples"][0]
    if schema.get("enum"):
        return schema["enum"][0]

    def recurse(sub, sub_name=None):
        return build_example(sub, faker, resolve, sub_name, _depth + 1, _seen)

    if "allOf" in schema:
        merged: dict = {}
        for part in schema["allOf"]:
            value = recurse(part, name)
            if isinstance(value, dict):
                merged.update(value)
            elif value is not None and not merged:
                return value
        return merged
    for key in ("oneOf", "anyOf"):
        if schema.get(key):
            return recurse(schema[key][0], name)

    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        schema_type = next((t for t in schema_type if t != "null"), None)
    if schema_type is None:
        if "properties" in schema:
            schema_type = "object"
        elif "items" in schema:
            schema_type = "array"

    if schema_type == "object":
        return {
            prop: recurse(sub, prop)
            for prop, sub in (schema.get("properties") or {}).items()
            if not (isinstance(sub, dict) and sub.get("writeOnly"))
        }
    if schema_type == "array":
        count = max(1, schema.get("minItems", 1))
        return [recurse(schema.get("items", {}), name) for _ in range(min(count, 3))]
    if schema_type in ("integer", "number"):
        low = schema.get("minimum", 1 if schema_type == "integer" else 0)
        high = schema.get("maximum", max(low, 1000))
        if schema_type == "integer":
            return faker.number(int(low), int(high))
        return faker.float(low, high)
    if schema_type == "boolean":
        return faker.boolean()
    if schema_type == "string":
        return _string_example(schema, faker, name)
    return None


def _string_example(schema: dict, faker: FakeDataGenerator, name: str | None) -> str:
    fmt = schema.get("format")
    if fmt in FORMATS:
        return FORMATS[fmt](faker)
    if name:
        key = name.lower().replace("_", "").replace("-", "")
        if key in NAME_HINTS:
            return NAME_HINTS[key](faker)
        if key.endswith("email"):
            return faker.email()
        if name.endswith(("_id", "Id")):
            return faker.uuid()
        if name.endswith(("_at", "At", "Date")):
            return faker.date_time()
    value = faker.word()
    min_length = schema.get("minLength")
    if min_length and len(value) < min_length:
        value = value.ljust(min_length, "x")
    max_length = schema.get("maxLength")
    if max_length:
        value = value[:max_length]
    return value
