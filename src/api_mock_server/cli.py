"""CLI entry point for api-mock-server."""

import logging
from pathlib import Path

import click
import uvicorn

from api_mock_server.errors import DocumentError
from api_mock_server.parser.base import ApiDocument
from api_mock_server.parser.openapi import parse_document
from api_mock_server.server.app import create_mock_server
from api_mock_server.server.routes import synthesize_routes


def _load_doc(doc_path: Path) -> ApiDocument:
    """Parse an API document file, reporting document errors as CLI errors."""
    try:
        return parse_document(doc_path.read_text(encoding="utf-8"))
    except DocumentError as e:
        raise click.ClickException(f"{doc_path}: {e}") from e


def _log_request(request, operation):
    click.echo(f"{request.method} {request.url.path}")


@click.group()
def main():
    """API Mock Server: serve mocked endpoints from an OpenAPI/Swagger document."""
    pass


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--host", default="127.0.0.1", envvar="MOCK_SERVER_HOST", show_default=True, help="Interface to bind.")
@click.option("--port", default=3000, type=int, envvar="MOCK_SERVER_PORT", show_default=True, help="Port to listen on.")
@click.option("--seed", default=None, type=int, envvar="MOCK_SERVER_SEED", help="Seed for reproducible fake data.")
@click.option(
    "--log-level",
    default="info",
    envvar="MOCK_SERVER_LOG_LEVEL",
    type=click.Choice(["debug", "info", "warning", "error"]),
    show_default=True,
    help="Log level.",
)
@click.option("--no-cors", is_flag=True, help="Disable permissive CORS headers.")
def serve(doc_path: Path, host: str, port: int, seed: int | None, log_level: str, no_cors: bool):
    """Serve mocked routes for DOC_PATH."""
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    click.echo(f"Parsing {doc_path}...")
    document = _load_doc(doc_path)
    click.echo(f"Found {len(document.operations)} operations.")

    app = create_mock_server(document, on_request=_log_request, seed=seed, cors=not no_cors)

    click.echo(f"Listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=log_level, access_log=False)


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def routes(doc_path: Path):
    """List the routes DOC_PATH would serve."""
    document = _load_doc(doc_path)
    count = 0
    for entry in synthesize_routes(document):
        for method, operation in entry.operations.items():
            if operation.handler_error is not None:
                kind = "[handler error]"
            elif operation.handler is not None:
                kind = "[handler]"
            else:
                statuses = sorted(s for s in operation.responses if s.isdigit() and s.startswith("2"))
                kind = f"[static {statuses[0] if statuses else 200}]"
            auth = " [auth]" if operation.security else ""
            click.echo(f"{method:7} {operation.path} {kind}{auth}")
            count += 1
    click.echo(f"{count} routes.")
