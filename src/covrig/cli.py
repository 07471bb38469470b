"""Command-line entry point for covrig."""

from __future__ import annotations

import logging
import subprocess
import sys

import click
from rich.console import Console

from covrig import __version__
from covrig.config import load_config, validate_config
from covrig.core import Covrig
from covrig.startup import child_environment

logger = logging.getLogger(__name__)
console = Console()


def _make_covrig(*, cache: bool | None = None) -> Covrig:
    config = load_config()
    if cache is not None:
        config.enable_cache = cache
    for problem in validate_config(config):
        console.print(f"[yellow]config:[/yellow] {problem}")
    return Covrig(config)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="covrig")
def cli(*, verbose: bool) -> None:
    """Process-safe, cache-aware coverage for Python programs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option("--all", "all_files", is_flag=True, help="Report files no test imported too.")
@click.option(
    "--cache/--no-cache", default=None, help="Cache instrumented source between runs."
)
@click.option(
    "--clean/--no-clean", default=True, show_default=True, help="Discard earlier snapshots first."
)
@click.option("-r", "--reporter", "reporters", multiple=True, help="Reporter name (repeatable).")
@click.option("--silent", is_flag=True, help="Collect coverage without reporting.")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def run(
    command: tuple[str, ...],
    *,
    all_files: bool,
    cache: bool | None,
    clean: bool,
    reporters: tuple[str, ...],
    silent: bool,
) -> None:
    """Run COMMAND with coverage for every Python process it starts."""
    covrig = _make_covrig(cache=cache)
    if clean:
        covrig.cleanup()
        covrig.temp_directory().mkdir(parents=True, exist_ok=True)
    if all_files:
        covrig.add_all_files()

    env = child_environment(covrig.cwd, enable_cache=covrig.enable_cache)
    try:
        completed = subprocess.run(  # noqa: S603
            list(command), cwd=covrig.cwd, env=env, check=False
        )
    except FileNotFoundError as exc:
        console.print(f"[red]Cannot run {command[0]}: {exc}[/red]")
        sys.exit(127)

    if not silent:
        covrig.report(list(reporters) or None, console=console)
    sys.exit(completed.returncode)


@cli.command()
@click.option("-r", "--reporter", "reporters", multiple=True, help="Reporter name (repeatable).")
def report(reporters: tuple[str, ...]) -> None:
    """Merge every snapshot and render the configured reporters."""
    covrig = _make_covrig()
    try:
        covrig.report(list(reporters) or None, console=console)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option(
    "--cache/--no-cache", default=None, help="Cache instrumented source between runs."
)
def instrument(cache: bool | None) -> None:
    """Record every matching file with zero counts."""
    covrig = _make_covrig(cache=cache)
    covrig.add_all_files()
    console.print(f"[green]✓[/green] {len(covrig.accumulator)} files registered")


@cli.command()
def clean() -> None:
    """Delete collected snapshots."""
    covrig = _make_covrig()
    covrig.cleanup()
    console.print(f"[green]✓[/green] removed {covrig.temp_directory()}")


@cli.command("clear-cache")
def clear_cache() -> None:
    """Delete cached instrumented source."""
    covrig = _make_covrig()
    covrig.clear_cache()
    console.print(f"[green]✓[/green] removed {covrig.cache_directory()}")
