"""Validation of request credentials against declared security schemes.

Only presence and syntax are checked. Tokens are never verified: any
well-formed bearer token or non-empty API key is accepted.
"""

import base64
import binascii
import re
from typing import Mapping

from api_mock_server.errors import AuthError
from api_mock_server.parser.base import SecurityScheme

# RFC 6750 b64token
BEARER_TOKEN = re.compile(r"^[A-Za-z0-9\-._~+/]+=*$")


class Credentials:
    """The parts of a request that can carry credentials."""

    def __init__(
        self,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ):
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.query = dict(query or {})
        self.cookies = dict(cookies or {})


def validate_security(
    requirements: list[dict[str, list[str]]],
    schemes: dict[str, SecurityScheme],
    credentials: Credentials,
) -> None:
    """Check that at least one security requirement is satisfied.

    Requirements are OR'd; the schemes inside one requirement are AND'd.
    An empty requirement ({}) allows anonymous access.

    Raises AuthError if no requirement is satisfied.
    """
    if not requirements:
        return

    reasons = []
    for requirement in requirements:
        missing = [name for name in requirement if not _satisfies(schemes.get(name), credentials)]
        if not missing:
            return
        reasons.extend(m for m in missing if m not in reasons)

    raise AuthError(f"Missing or malformed credentials for: {', '.join(reasons)}", reasons)


def challenge(requirements: list[dict[str, list[str]]], schemes: dict[str, SecurityScheme]) -> str | None:
    """WWW-Authenticate value for the first HTTP-style scheme required."""
    for requirement in requirements:
        for name in requirement:
            scheme = schemes.get(name)
            if scheme is None:
                continue
            if scheme.type == "http" and scheme.scheme == "basic":
                return 'Basic realm="mock"'
            if scheme.type in ("http", "oauth2", "openIdConnect"):
                return "Bearer"
    return None


def _satisfies(scheme: SecurityScheme | None, credentials: Credentials) -> bool:
    if scheme is None:
        return False
    if scheme.type == "apiKey":
        return bool(_api_key(scheme, credentials))
    if scheme.type == "http":
        if scheme.scheme == "basic":
            return _valid_basic(credentials.headers.get("authorization", ""))
        if scheme.scheme == "bearer":
            return _valid_bearer(credentials.headers.get("authorization", ""))
        # other http schemes (digest, ...) only need the header with that scheme
        value = credentials.headers.get("authorization", "")
        return value.lower().startswith(f"{scheme.scheme or ''} ") and bool(value.split(" ", 1)[1].strip())
    if scheme.type in ("oauth2", "openIdConnect"):
        return _valid_bearer(credentials.headers.get("authorization", ""))
    # mutualTLS is established by the transport, nothing to inspect here
    return scheme.type == "mutualTLS"


def _api_key(scheme: SecurityScheme, credentials: Credentials) -> str | None:
    name = scheme.param_name or ""
    if scheme.location == "query":
        return credentials.query.get(name)
    if scheme.location == "cookie":
        return credentials.cookies.get(name)
    return credentials.headers.get(name.lower())


def _valid_bearer(value: str) -> bool:
    parts = value.split(" ", 1)
    return len(parts) == 2 and parts[0].lower() == "bearer" and bool(BEARER_TOKEN.match(parts[1].strip()))


def _valid_basic(value: str) -> bool:
    parts = value.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "basic":
        return False
    try:
        decoded = base64.b64decode(parts[1].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    return ":" in decoded
