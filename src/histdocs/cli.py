"""Historical document analysis CLI.

Analyzes scanned documents from a file store with an AI vision model and
saves the resulting documents and entities to a SQLite database.
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, TypeVar

import structlog
import typer

from histdocs.config import Settings
from histdocs.errors import HistdocsError
from histdocs.models.enums import JobStatus
from histdocs.services.factory import create_processing_service
from histdocs.services.processing import DocumentProcessingService

T = TypeVar("T")

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=lambda name: structlog.PrintLogger(file=sys.stderr),
    wrapper_class=structlog.BoundLogger,
    context_class=dict,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="histdocs",
    help="""Analyze scanned historical documents and store their entities.

Examples:

  # Create the database
  uv run histdocs init-db

  # Analyze a file from the file store without saving
  uv run histdocs analyze letters/1916-03-02.pdf

  # Analyze in the background and save the result
  uv run histdocs process letters/1916-03-02.pdf --auto-save

  # Save a reviewed analysis
  uv run histdocs save reviewed.json""",
    rich_markup_mode="markdown",
)

DbOption = typer.Option(None, "--db", help="SQLite database path (default: $HISTDOCS_DB_PATH or histdocs.db)")
FilesRootOption = typer.Option(
    None,
    "--files-root",
    "-r",
    help="Root directory of the file store (default: $HISTDOCS_FILES_ROOT or cwd)",
)


def _settings(db: Optional[str], files_root: Optional[str]) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, Any] = {}
    if db:
        overrides["db_path"] = db
    if files_root:
        overrides["files_root"] = Path(files_root)
    return settings.model_copy(update=overrides)


def _run(settings: Settings, action: Callable[[DocumentProcessingService], Awaitable[T]]) -> T:
    """Run an action against a fresh service, exiting with status 1 on typed errors."""

    async def runner() -> T:
        async with create_processing_service(settings) as service:
            return await action(service)

    try:
        return asyncio.run(runner())
    except HistdocsError as e:
        logger.error("command_failed", error=e.message, kind=type(e).__name__)
        raise typer.Exit(1) from e


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.command("init-db")
def init_db(db: Optional[str] = DbOption) -> None:
    """Create the database tables."""
    settings = _settings(db, None)

    async def action(service: DocumentProcessingService) -> None:
        return None

    _run(settings, action)
    typer.echo(f"Database ready at {settings.db_path}")


@app.command()
def analyze(
    file_id: str = typer.Argument(..., help="File id (path relative to the file store root)"),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Ignore cached results"),
    include_image: bool = typer.Option(False, "--include-image", help="Include the image data URL in the output"),
    db: Optional[str] = DbOption,
    files_root: Optional[str] = FilesRootOption,
) -> None:
    """Analyze a file without saving it."""
    settings = _settings(db, files_root)
    result = _run(settings, lambda service: service.analyze(file_id, force_refresh=force_refresh))

    record = result.to_record()
    if not include_image:
        record.pop("image_url", None)
    _echo_json(record)


@app.command()
def save(
    payload_file: Path = typer.Argument(..., help="JSON file with the document and its entities"),
    db: Optional[str] = DbOption,
) -> None:
    """Save a document payload with its entities."""
    if not payload_file.exists():
        logger.error("payload_not_found", path=str(payload_file))
        raise typer.Exit(1)

    try:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error("payload_invalid_json", path=str(payload_file), error=str(e))
        raise typer.Exit(1) from e

    document = _run(_settings(db, None), lambda service: service.save(payload))
    _echo_json(document.to_record())


@app.command()
def process(
    file_id: str = typer.Argument(..., help="File id (path relative to the file store root)"),
    auto_save: bool = typer.Option(False, "--auto-save", help="Save the analysis when it completes"),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Ignore cached results"),
    db: Optional[str] = DbOption,
    files_root: Optional[str] = FilesRootOption,
) -> None:
    """Run analysis as a tracked background job and report its final status."""
    settings = _settings(db, files_root)

    async def action(service: DocumentProcessingService):
        job_id = await service.submit_job(file_id, auto_save=auto_save, force_refresh=force_refresh)
        await service.wait_for_jobs(job_id)
        return service.job_status(job_id)

    job = _run(settings, action)
    record = job.to_record()
    if record.get("result"):
        record["result"].pop("image_url", None)
    _echo_json(record)
    if job.status != JobStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def show(
    document_id: str = typer.Argument(..., help="Document id"),
    db: Optional[str] = DbOption,
) -> None:
    """Show a saved document with its entities."""
    document = _run(_settings(db, None), lambda service: service.get_document(document_id))
    _echo_json(document.to_record())


@app.command()
def entity(
    entity_id: str = typer.Argument(..., help="Entity id"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Maximum number of linked documents to show"),
    db: Optional[str] = DbOption,
) -> None:
    """Show an entity with its most recent documents."""

    async def action(service: DocumentProcessingService) -> dict[str, Any]:
        found = await service.get_entity(entity_id)
        documents = await service.find_documents_by_entity(entity_id, limit=limit)
        record = found.to_record()
        record["documents"] = [
            {"document_id": d.document_id, "title": d.title, "document_type": d.document_type.value}
            for d in documents
        ]
        return record

    _echo_json(_run(_settings(db, None), action))


@app.command()
def entities(
    entity_type: str = typer.Argument(..., help="Entity type, e.g. person or location"),
    db: Optional[str] = DbOption,
) -> None:
    """List every entity of one type."""
    found = _run(_settings(db, None), lambda service: service.find_entities_by_type(entity_type))
    _echo_json([e.to_record() for e in found])


@app.command()
def stats(db: Optional[str] = DbOption) -> None:
    """Show document and entity counts per type."""
    _echo_json(_run(_settings(db, None), lambda service: service.stats()))


@app.command()
def delete(
    document_id: str = typer.Argument(..., help="Document id"),
    db: Optional[str] = DbOption,
) -> None:
    """Delete a saved document. Its entities are kept."""
    _run(_settings(db, None), lambda service: service.delete_document(document_id))
    typer.echo(f"Deleted document {document_id}")


@app.command("prune-entities")
def prune_entities(db: Optional[str] = DbOption) -> None:
    """Delete entities that no document references."""
    deleted = _run(_settings(db, None), lambda service: service.cleanup_orphaned_entities())
    typer.echo(f"Deleted {deleted} orphaned entities")


@app.command()
def version() -> None:
    """Show version information."""
    from histdocs import __version__

    typer.echo(f"histdocs {__version__}")
