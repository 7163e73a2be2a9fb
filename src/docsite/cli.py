"""Command line interface for docsite."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from docsite.build.orchestrator import BuildResult, SiteBuilder, config_failure, emit
from docsite.build.watch import BuildCoordinator, watch as watch_tree
from docsite.config import DEFAULT_CONFIG_NAME, SiteConfig, load_config
from docsite.errors import ConfigError, StructuralError
from docsite.index.search import SEARCH_MODES, Searcher
from docsite.index.storage import SQLiteIndexStore
from docsite.models import BuildReport

console = Console()
app = typer.Typer(help="docsite - compile a Markdown tree into a validated, searchable site")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(
    config_path: Path | None,
    *,
    root: Path | None = None,
    out: Path | None = None,
    db: Path | None = None,
    strict: bool = False,
    fail_on_warning: bool = False,
    auto_discover: bool = False,
) -> SiteConfig:
    """Read the config file (if any) and apply command line overrides."""
    if config_path is None and Path(DEFAULT_CONFIG_NAME).is_file():
        config_path = Path(DEFAULT_CONFIG_NAME)
    config = load_config(config_path) if config_path is not None else SiteConfig()
    if root is not None:
        config.root = root
    if out is not None:
        config.out_dir = out
    if db is not None:
        config.db_path = db
    config.strict = config.strict or strict
    config.fail_on_warning = config.fail_on_warning or fail_on_warning
    config.auto_discover = config.auto_discover or auto_discover
    return config


def _print_report(report: BuildReport) -> None:
    if report.errors or report.warnings:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Severity")
        table.add_column("Kind")
        table.add_column("Path")
        table.add_column("Message")
        for diagnostic in report.errors:
            table.add_row("[red]error[/red]", diagnostic.kind, diagnostic.path, diagnostic.message)
        for diagnostic in report.warnings:
            table.add_row("[yellow]warning[/yellow]", diagnostic.kind, diagnostic.path, diagnostic.message)
        console.print(table)

    status = "[green]Site built[/green]" if report.succeeded else "[red]Build failed[/red]"
    console.print(
        f"{status}: {report.document_count} documents, {len(report.errors)} errors, "
        f"{len(report.warnings)} warnings in {report.duration_ms:.0f} ms"
    )


@app.command()
def build(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to docsite.yml"),
    root: Optional[Path] = typer.Option(None, "--root", help="Content root directory"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite search database path"),
    strict: bool = typer.Option(False, "--strict", help="Treat broken links as errors"),
    fail_on_warning: bool = typer.Option(False, "--fail-on-warning", help="Do not emit a site when warnings occur"),
    auto_discover: bool = typer.Option(False, "--auto-discover", help="Add unlisted documents to the navigation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a cold build and write the site artifact and report."""
    _setup_logging(verbose)
    try:
        site_config = _load_config(
            config,
            root=root,
            out=out,
            db=db,
            strict=strict,
            fail_on_warning=fail_on_warning,
            auto_discover=auto_discover,
        )
    except (ConfigError, StructuralError) as exc:
        _print_report(config_failure(exc).report)
        raise typer.Exit(code=1)

    console.print(f"Building [bold]{site_config.root}[/bold] into [bold]{site_config.out_dir}[/bold]...")
    result = SiteBuilder(site_config).build()
    emit(result, site_config, Path.cwd())
    _print_report(result.report)
    if not result.report.succeeded:
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to docsite.yml"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite search database path"),
    limit: int = typer.Option(10, help="Number of results to display"),
    mode: Optional[str] = typer.Option(None, help="Combine terms with 'and' or 'or'"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Query the search index of a built site."""
    _setup_logging(verbose)
    if mode is not None and mode not in SEARCH_MODES:
        raise typer.BadParameter(f"mode must be one of {', '.join(SEARCH_MODES)}")
    try:
        site_config = _load_config(config, db=db)
    except (ConfigError, StructuralError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    resolved_db = site_config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    store = SQLiteIndexStore(resolved_db)
    try:
        index = store.load(site_config.stop_words)
    finally:
        store.close()

    searcher = Searcher(
        index,
        mode=mode or site_config.search_mode,
        title_boost=site_config.title_boost,
        snippet_window=site_config.snippet_window,
    )
    results = searcher.search(query, limit=limit)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Title")
    table.add_column("Snippet")
    for result in results:
        table.add_row(f"{result.score:.3f}", result.document_path, result.title, result.snippet[:180])
    console.print(table)


@app.command()
def watch(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to docsite.yml"),
    root: Optional[Path] = typer.Option(None, "--root", help="Content root directory"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    interval: float = typer.Option(0.5, help="Polling interval in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Build, then rebuild incrementally whenever documents change."""
    _setup_logging(verbose)
    try:
        site_config = _load_config(config, root=root, out=out)
    except (ConfigError, StructuralError) as exc:
        _print_report(config_failure(exc).report)
        raise typer.Exit(code=1)

    builder = SiteBuilder(site_config)
    first = builder.build()
    emit(first, site_config, Path.cwd())
    _print_report(first.report)

    def publish(result: BuildResult) -> None:
        emit(result, builder.config, Path.cwd())
        _print_report(result.report)

    coordinator = BuildCoordinator(builder, debounce=site_config.debounce, on_result=publish)
    coordinator.start()
    stop = threading.Event()
    extra = [site_config.source] if site_config.source is not None else []
    console.print(f"Watching [bold]{site_config.root}[/bold] (Ctrl+C to stop)")
    try:
        watch_tree(site_config.root, coordinator, interval=interval, stop=stop, extra_files=extra)
    except KeyboardInterrupt:
        stop.set()
    finally:
        coordinator.stop()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    out: Optional[Path] = typer.Option(None, "--out", help="Built site directory"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite search database path"),
) -> None:
    """Serve search and navigation of a built site over HTTP."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from docsite.web.app import app as web_app, configure

    try:
        site_config = _load_config(None, out=out, db=db)
    except (ConfigError, StructuralError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    resolved_db = site_config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Warning: search database not found, searches will fail.[/yellow]")
    configure(out_dir=site_config.out_dir, db_path=resolved_db)

    console.print(f"Serving http://{host}:{port} (site: {site_config.out_dir})")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
