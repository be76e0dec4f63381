"""A Rich-powered console overview of courses and their videos."""

from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.storage import CatalogRepository
from .overview import CourseOverview, OverviewSnapshot, VideoOverview, collect_overview


class ModernUI:
    """Render the catalog as a tree next to a summary panel."""

    def __init__(self, repository: CatalogRepository, *, console: Optional[Console] = None) -> None:
        self._repository = repository
        self._console = console or Console()

    def run(self) -> None:
        snapshot = collect_overview(self._repository)
        console = self._console

        console.rule("[bold magenta]CourseHub Overview")

        if snapshot.course_count == 0:
            console.print(
                Panel(
                    "No courses have been created yet.\n"
                    "Start the API with [bold]python run.py serve[/bold] and create one.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        tree_panel = Panel(
            self._build_tree(snapshot.courses),
            title="Catalog",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True))

    def _build_tree(self, courses: Iterable[CourseOverview]) -> Tree:
        tree = Tree("[bold cyan]Courses", guide_style="cyan")
        for overview in courses:
            course_node = tree.add(self._build_course_label(overview))
            if not overview.videos:
                course_node.add("[dim]No videos yet")
                continue
            for video in overview.videos:
                course_node.add(self._build_video_label(video))
        return tree

    @staticmethod
    def _build_course_label(overview: CourseOverview) -> Text:
        record = overview.record
        label = Text(f"{record.position}. {record.title}", style="bold")
        label.append(f"  ({record.video_count} videos)", style="cyan")
        if not record.is_published:
            label.append("  draft", style="yellow")
        if record.category:
            label.append("\n")
            label.append(record.category, style="dim")
        return label

    @staticmethod
    def _build_video_label(overview: VideoOverview) -> Text:
        record = overview.record
        label = Text(f"{record.position}. {record.title}", style="white")
        if overview.has_notes:
            label.append("  📄 Notes", style="green")
        if not record.is_published:
            label.append("  hidden", style="yellow")
        return label

    @staticmethod
    def _build_stats_panel(snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Courses", str(snapshot.course_count))
        metrics.add_row("Published", str(snapshot.published_course_count))
        metrics.add_row("Videos", str(snapshot.video_count))
        metrics.add_row("With notes", str(snapshot.notes_count))
        return Panel(metrics, title="At a glance", border_style="magenta", box=box.ROUNDED)


__all__ = ["ModernUI"]
