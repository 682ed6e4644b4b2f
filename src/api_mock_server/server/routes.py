"""Route synthesis: one route per document path, dispatching on method."""

import logging
import re

from pydantic import BaseModel

from api_mock_server.parser.base import PATH_PLACEHOLDER, ApiDocument, Operation

logger = logging.getLogger(__name__)

ROUTE_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class RouteEntry(BaseModel):
    """A synthesized route: one path shape and its operations by method."""

    path: str  # as declared, /posts/{postId}
    route_path: str  # as the router sees it, /posts/{postId} or /posts/{param_0}
    placeholders: list[str] = []  # router placeholder names, in path order
    operations: dict[str, Operation] = {}

    @property
    def methods(self) -> list[str]:
        return list(self.operations)

    def operation_for(self, method: str) -> Operation | None:
        method = method.upper()
        if method == "HEAD" and "HEAD" not in self.operations:
            method = "GET"
        return self.operations.get(method)

    def path_params(self, operation: Operation, values: dict) -> dict[str, str]:
        """Router placeholder values keyed by the names the operation declares."""
        declared = operation.path_params
        return {name: str(values[p]) for name, p in zip(declared, self.placeholders) if p in values}


def synthesize_routes(document: ApiDocument) -> list[RouteEntry]:
    """Build the route table, most specific paths first.

    Paths that differ only by placeholder names share a route; when two
    operations claim the same method on it, the last declared wins.
    """
    entries: dict[str, RouteEntry] = {}
    for operation in document.operations:
        key = route_key(operation.path)
        entry = entries.get(key)
        if entry is None:
            route_path, placeholders = to_route_path(operation.path)
            entry = entries[key] = RouteEntry(path=operation.path, route_path=route_path, placeholders=placeholders)

        if operation.method in entry.operations:
            logger.warning(
                "Duplicate route %s %s, the last declaration replaces %s",
                operation.method,
                operation.path,
                entry.operations[operation.method].label,
            )
        entry.operations[operation.method] = operation

    return sorted(entries.values(), key=lambda e: specificity(e.path))


def route_key(path: str) -> str:
    """The path shape with placeholder names erased: /posts/{}."""
    return PATH_PLACEHOLDER.sub("{}", path)


def specificity(path: str) -> tuple:
    """Sort key putting literal segments ahead of placeholders."""
    return tuple(1 if PATH_PLACEHOLDER.search(segment) else 0 for segment in path.strip("/").split("/"))


def to_route_path(path: str) -> tuple[str, list[str]]:
    """Rewrite placeholders into names the router accepts.

    Returns the router path and its placeholder names in path order.
    """
    placeholders: list[str] = []

    def replace(match: re.Match) -> str:
        declared = match.group(1)
        placeholder = declared if ROUTE_IDENTIFIER.match(declared) else f"param_{len(placeholders)}"
        if placeholder in placeholders:
            placeholder = f"param_{len(placeholders)}"
        placeholders.append(placeholder)
        return "{" + placeholder + "}"

    return PATH_PLACEHOLDER.sub(replace, path), placeholders
