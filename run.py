"""Entry-point for the CourseHub application."""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table

from coursehub.bootstrap import initialize_app
from coursehub.client import HttpUploadTransport, UploadItem, UploadQueue, UploadSource, UploadStatus
from coursehub.errors import ValidationError
from coursehub.logging_utils import build_file_and_stream_handlers, configure_logging
from coursehub.services.storage import CatalogRepository
from coursehub.ui.modern import ModernUI
from coursehub.web import create_app
from coursehub.web.server import get_max_upload_bytes


LOGGER = logging.getLogger("coursehub.cli")


cli = typer.Typer(add_completion=False, help="CourseHub management commands")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_API_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"


def _prepare_logging(storage_root: Path) -> None:
    configure_logging(handlers=build_file_and_stream_handlers(storage_root))


def _normalize_root_path(root_path: Optional[str]) -> str:
    normalized = (root_path or "").strip().rstrip("/")
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the API server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the API server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the API server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="COURSEHUB_ROOT_PATH",
    ),
) -> None:
    """Run the CourseHub REST API."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    repository = CatalogRepository(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    config_kwargs = {}
    max_upload_bytes = get_max_upload_bytes()
    if max_upload_bytes > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = max_upload_bytes
        else:
            LOGGER.debug("uvicorn.Config has no 'limit_max_request_size'; relying on the API check")

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving CourseHub on http://%s:%s%s", host, port, normalized_root or "/")
    server.run()


@cli.command()
def overview() -> None:
    """Render every course and its videos, drafts included."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    repository = CatalogRepository(config)
    ModernUI(repository).run()


async def _drive_uploads(
    transport: HttpUploadTransport,
    sources: List[UploadSource],
    course_id: int,
    titles: List[str],
    console: Console,
) -> List[UploadItem]:
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        bars: Dict[str, TaskID] = {}
        queue: Optional[UploadQueue] = None

        def _render(_item: Optional[UploadItem]) -> None:
            if queue is None:
                return
            for entry in queue.items:
                if entry.id not in bars:
                    bars[entry.id] = progress.add_task(entry.title, total=100)
                progress.update(
                    bars[entry.id],
                    completed=entry.progress,
                    description=f"{entry.title} [{entry.status.value}]",
                )

        queue = UploadQueue(transport, on_update=_render)
        created: List[dict] = []
        with queue.register_completion_observer(lambda video: created.append(video or {})):
            queue.enqueue(sources, course_id, titles)
            await queue.join()
        LOGGER.debug("Server confirmed %s uploads", len(created))
        return queue.items


@cli.command()
def upload(
    course_id: int = typer.Argument(..., help="Course receiving the videos"),
    files: List[Path] = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Video files, uploaded one at a time in the given order",
    ),
    title: List[str] = typer.Option(
        [],
        "--title",
        "-t",
        help="Title for the file at the same position; defaults to the filename",
    ),
    api_url: str = typer.Option(DEFAULT_API_URL, envvar="COURSEHUB_API_URL", help="CourseHub API base URL"),
    token: Optional[str] = typer.Option(None, envvar="COURSEHUB_ADMIN_TOKEN", help="Admin bearer token"),
) -> None:
    """Upload videos to a course through the sequential upload queue."""

    configure_logging(logging.WARNING)
    console = Console()

    try:
        sources = [UploadSource.from_path(path) for path in files]
    except ValidationError as error:
        raise typer.BadParameter(str(error), param_hint="FILES") from error

    transport = HttpUploadTransport(api_url, token)
    items = asyncio.run(_drive_uploads(transport, sources, course_id, list(title), console))

    summary = Table(title="Upload summary")
    summary.add_column("Title")
    summary.add_column("Status")
    summary.add_column("Detail")
    failures = 0
    for item in items:
        if item.status is UploadStatus.COMPLETED:
            detail = f"video id {(item.result or {}).get('id', '?')}"
        else:
            failures += 1
            detail = item.error or ""
        summary.add_row(item.title, item.status.value, detail)
    console.print(summary)

    if failures:
        typer.echo(f"{failures} upload(s) failed.", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
