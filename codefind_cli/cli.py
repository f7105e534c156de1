"""Typer-based CLI for codefind."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .cli_setup import set_llm, show_llm
from .config_manager import Settings, load_settings
from .context import SearchContext, build_context
from .errors import AIRerankError, ConfigError, IndexLoadError
from .export import grouped_listing, to_json
from .models import SearchResult

logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(
    help="🔍 codefind: fuzzy symbol search over Python projects, with AI re-ranking.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("set-llm")(set_llm)
app.command("show-llm")(show_llm)

ROOTS_ARGUMENT = typer.Argument(
    None,
    help="Project roots to index (default: [index] roots from config, else the current directory).",
)
FAIL_FAST_OPTION = typer.Option(
    None,
    "--fail-fast/--keep-going",
    help="Abort when any root fails to load, or skip failing roots.",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"codefind v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """codefind: locate classes, interfaces, functions and methods by fuzzy name."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _settings() -> Settings:
    try:
        return load_settings()
    except ConfigError as exc:
        console.print(f"[red]✗ Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=1)


def _load_context(roots: Optional[List[Path]], fail_fast: Optional[bool]) -> SearchContext:
    settings = _settings()
    if fail_fast is not None:
        settings.fail_fast = fail_fast
    resolved = list(roots or []) or [Path(r) for r in settings.roots] or [Path(".")]
    try:
        ctx = build_context(resolved, settings)
    except IndexLoadError as exc:
        console.print(f"[red]✗ Indexing failed:[/red] {exc}")
        raise typer.Exit(code=1)
    for root, reason in ctx.report.failed_roots.items():
        console.print(f"[yellow]⚠ Skipped {root}:[/yellow] {reason}", highlight=False)
    return ctx


def _print_table(results: List[SearchResult]) -> None:
    table = Table(show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Location")
    table.add_column("Score", justify="right")
    for i, result in enumerate(results, 1):
        el = result.element
        owner = f"{el.parent_name}." if el.parent_name and el.parent_type != "file" else ""
        table.add_row(
            str(i), el.type, f"{owner}{el.name}", f"{el.file_path}:{el.line_number}", f"{result.score:.3f}"
        )
    console.print(table)


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Search text; empty string lists the first elements."),
    roots: Optional[List[Path]] = ROOTS_ARGUMENT,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum number of results."),
    output: str = typer.Option("grouped", "--format", "-f", help="Output format: grouped, json, table."),
    ai: bool = typer.Option(False, "--ai", help="Re-rank candidates with the configured LLM."),
    fail_fast: Optional[bool] = FAIL_FAST_OPTION,
):
    """Search the index once and print the results."""
    if output not in ("grouped", "json", "table"):
        raise typer.BadParameter("format must be one of: grouped, json, table", param_hint="--format")

    ctx = _load_context(roots, fail_fast)
    results: List[SearchResult]
    if ai:
        try:
            results = asyncio.run(ctx.reranker.rerank(query, limit))
        except AIRerankError as exc:
            typer.echo(typer.style(f"⚠ AI re-ranking failed, using fuzzy results: {exc}", fg=typer.colors.YELLOW), err=True)
            results = ctx.engine.search(query, limit)
    else:
        results = ctx.engine.search(query, limit)

    if output == "json":
        typer.echo(to_json(results))
    elif output == "table":
        _print_table(results)
    elif results:
        typer.echo(grouped_listing(results))
    else:
        typer.echo("No results found.")


@app.command("interactive")
def interactive(
    roots: Optional[List[Path]] = ROOTS_ARGUMENT,
    fail_fast: Optional[bool] = FAIL_FAST_OPTION,
):
    """Search as you type (Tab switches between fuzzy and AI mode)."""
    from .tui import LiveSearchApp

    ctx = _load_context(roots, fail_fast)
    asyncio.run(LiveSearchApp(ctx, console=console).run())


@app.command("shell")
def shell(
    roots: Optional[List[Path]] = ROOTS_ARGUMENT,
    fail_fast: Optional[bool] = FAIL_FAST_OPTION,
):
    """Line-oriented search shell with export and stats commands."""
    from .cli_shell import SearchShell

    ctx = _load_context(roots, fail_fast)
    SearchShell(ctx, console=console).run()


@app.command("stats")
def stats(
    roots: Optional[List[Path]] = ROOTS_ARGUMENT,
    fail_fast: Optional[bool] = FAIL_FAST_OPTION,
):
    """Show element counts by type and file extension."""
    from .cli_shell import SearchShell

    ctx = _load_context(roots, fail_fast)
    typer.echo(f"Roots: {', '.join(str(r) for r in ctx.report.loaded_roots)}")
    SearchShell(ctx, console=console).stats()


if __name__ == "__main__":
    app()
