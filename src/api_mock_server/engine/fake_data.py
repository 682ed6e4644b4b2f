"""Fake data generator handed to scripts as ``faker``.

A thin adapter over the ``faker`` library that returns JSON-friendly
values (dates as ISO strings) and exposes the few helpers scripts use
most under short names. Any other Faker provider is reachable through
attribute access, e.g. ``faker.company()``.
"""

from datetime import date, datetime
from typing import Any, Sequence

from faker import Faker


class FakeDataGenerator:
    """Typed generators for identifiers, text, people, dates and contacts."""

    def __init__(self, seed: int | None = None, locale: str | None = None):
        self._faker = Faker(locale)
        if seed is not None:
            self._faker.seed_instance(seed)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._faker, name)

    # identifiers

    def uuid(self) -> str:
        return self._faker.uuid4()

    def id(self) -> str:
        return self.uuid()

    def number(self, min: int = 0, max: int = 1000) -> int:
        return self._faker.random_int(min, max)

    def float(self, min: float = 0, max: float = 1000, precision: int = 2) -> float:
        if min >= max:
            return round(min, precision)
        return round(self._faker.pyfloat(min_value=min, max_value=max, right_digits=precision), precision)

    def boolean(self) -> bool:
        return self._faker.pybool()

    # text

    def word(self) -> str:
        return self._faker.word()

    def words(self, count: int = 3) -> str:
        return " ".join(self._faker.words(count))

    def sentence(self, words: int = 8) -> str:
        return self._faker.sentence(nb_words=words)

    def sentences(self, count: int = 3) -> str:
        return " ".join(self._faker.sentences(count))

    def paragraph(self, sentences: int = 4) -> str:
        return self._faker.paragraph(nb_sentences=sentences)

    def paragraphs(self, count: int = 3) -> str:
        return "\n\n".join(self._faker.paragraphs(count))

    def slug(self) -> str:
        return self._faker.slug()

    # people

    def first_name(self) -> str:
        return self._faker.first_name()

    def last_name(self) -> str:
        return self._faker.last_name()

    def name(self) -> str:
        return self._faker.name()

    def job_title(self) -> str:
        return self._faker.job()

    def bio(self) -> str:
        return f"{self._faker.job()} from {self._faker.city()}. {self._faker.sentence()}"

    def avatar(self) -> str:
        return self._faker.image_url(width=128, height=128)

    # dates

    def past(self, days: int = 365) -> str:
        """A timestamp within the last ``days`` days."""
        return self._faker.date_time_between(start_date=f"-{days}d", end_date="now").isoformat()

    def future(self, days: int = 365) -> str:
        """A timestamp within the next ``days`` days."""
        return self._faker.date_time_between(start_date="now", end_date=f"+{days}d").isoformat()

    def recent(self, days: int = 7) -> str:
        return self.past(days)

    def between(self, start: str | datetime | date, end: str | datetime | date) -> str:
        """A timestamp between two dates (ISO strings or date objects)."""
        start_dt, end_dt = _as_datetime(start), _as_datetime(end)
        if end_dt < start_dt:
            start_dt, end_dt = end_dt, start_dt
        return self._faker.date_time_between(start_date=start_dt, end_date=end_dt).isoformat()

    def date(self) -> str:
        return self._faker.date()

    def date_time(self) -> str:
        return self._faker.date_time().isoformat()

    def time(self) -> str:
        return self._faker.time()

    # internet and contact

    def email(self) -> str:
        return self._faker.email()

    def username(self) -> str:
        return self._faker.user_name()

    def password(self) -> str:
        return self._faker.password()

    def url(self) -> str:
        return self._faker.url()

    def domain(self) -> str:
        return self._faker.domain_name()

    def ipv4(self) -> str:
        return self._faker.ipv4()

    def ipv6(self) -> str:
        return self._faker.ipv6()

    def phone(self) -> str:
        return self._faker.phone_number()

    def city(self) -> str:
        return self._faker.city()

    def country(self) -> str:
        return self._faker.country()

    def street_address(self) -> str:
        return self._faker.street_address()

    # helpers

    def pick(self, items: Sequence[Any]) -> Any:
        """A random element of a non-empty sequence."""
        if not items:
            raise ValueError("pick() needs a non-empty sequence")
        return self._faker.random_element(list(items))

    def sample(self, items: Sequence[Any], count: int) -> list:
        return self._faker.random_sample(list(items), min(count, len(items)))


def _as_datetime(value: str | datetime | date) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(value)
