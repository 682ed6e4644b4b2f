"""Declarative mock API server driven by OpenAPI / Swagger documents."""

from api_mock_server.server.app import MockServer, create_mock_server

__all__ = ["MockServer", "create_mock_server"]
