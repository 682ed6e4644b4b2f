"""Exception types raised by the mock server."""


class MockServerError(Exception):
    """Base class for all mock server errors."""


class DocumentError(MockServerError):
    """The API document is malformed and cannot be served."""


class ScriptError(MockServerError):
    """An x-handler or x-seed script failed to compile."""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class SeedError(MockServerError):
    """A seed script raised while populating its collection."""

    def __init__(self, schema: str, cause: BaseException):
        super().__init__(f"Seeding {schema} failed: {describe_exception(cause)}")
        self.schema = schema
        self.cause = cause


class AuthError(MockServerError):
    """No security requirement of the operation was satisfied."""

    def __init__(self, reason: str, schemes: list[str] | None = None):
        super().__init__(reason)
        self.reason = reason
        self.schemes = schemes or []


class HandlerError(MockServerError):
    """A handler script raised or returned something that cannot be sent."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"error": "Handler execution failed", "message": self.message}


def describe_exception(exc: BaseException) -> str:
    """Message of an exception, falling back to its class name."""
    return str(exc) or type(exc).__name__
