"""Built-in reporters that render a :class:`~covrig.reporting.collector.Collector`."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from covrig.reporting.collector import Collector

logger = logging.getLogger(__name__)

_GOOD_RATE = 80.0
_FAIR_RATE = 50.0
_MAX_UNCOVERED_DISPLAY = 8

JSON_REPORT_NAME = "coverage-final.json"


def _rate_color(rate: float) -> str:
    """Return a Rich color name for a coverage percentage."""
    if rate >= _GOOD_RATE:
        return "green"
    if rate >= _FAIR_RATE:
        return "yellow"
    return "red"


def _fmt(rate: float) -> str:
    return f"[{_rate_color(rate)}]{rate:.1f}%[/{_rate_color(rate)}]"


def _format_uncovered(lines: list[int]) -> str:
    shown = ", ".join(str(line) for line in lines[:_MAX_UNCOVERED_DISPLAY])
    if len(lines) > _MAX_UNCOVERED_DISPLAY:
        shown += ", …"
    return shown


class CoverageReporter(Protocol):
    name: str

    def write(self, collector: Collector) -> None: ...


class TextReporter:
    """Per-file coverage table on the terminal."""

    name = "text"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def write(self, collector: Collector) -> None:
        summary = collector.summary()
        table = Table(title="Coverage", show_lines=False)
        table.add_column("File", style="cyan")
        table.add_column("Lines", justify="right")
        table.add_column("Branches", justify="right")
        table.add_column("Functions", justify="right")
        table.add_column("Uncovered lines", style="dim")

        for path, file_cov in summary.files.items():
            table.add_row(
                path,
                _fmt(file_cov.line_coverage_percentage),
                _fmt(file_cov.branch_coverage_percentage),
                _fmt(file_cov.function_coverage_percentage),
                _format_uncovered(file_cov.uncovered_lines),
            )

        table.add_section()
        table.add_row(
            "[bold]All files[/bold]",
            _fmt(summary.overall_line_coverage),
            _fmt(summary.overall_branch_coverage),
            _fmt(summary.overall_function_coverage),
            "",
        )
        self.console.print(table)


class JsonReporter:
    """Write the merged coverage model as ``coverage-final.json``."""

    name = "json"

    def __init__(self, report_dir: Path) -> None:
        self.report_dir = report_dir

    @property
    def output_path(self) -> Path:
        return self.report_dir / JSON_REPORT_NAME

    def write(self, collector: Collector) -> None:
        self.report_dir.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text(
            json.dumps(collector.final_coverage(), indent=2, sort_keys=True),
            encoding="utf-8",
        )
        logger.info("JSON coverage written to %s", self.output_path)


class Reporter:
    """Render a collector through a list of named reporters.

    Args:
        report_dir: Output directory for file-based reporters.
        console: Console for terminal reporters.
    """

    def __init__(self, report_dir: Path | str = "coverage", console: Console | None = None) -> None:
        self.report_dir = Path(report_dir)
        self.console = console
        self._reporters: list[CoverageReporter] = []

    def add(self, name: str) -> None:
        """Add the reporter called *name*.

        Raises:
            ValueError: If no reporter has that name.
        """
        if name == TextReporter.name:
            self._reporters.append(TextReporter(self.console))
        elif name == JsonReporter.name:
            self._reporters.append(JsonReporter(self.report_dir))
        else:
            msg = f"Unknown reporter: {name}"
            raise ValueError(msg)

    @property
    def names(self) -> list[str]:
        return [reporter.name for reporter in self._reporters]

    def write(self, collector: Collector) -> None:
        for reporter in self._reporters:
            reporter.write(collector)
