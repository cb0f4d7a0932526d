"""Typer-based CLI for ReqGraph reverse-dependency analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config_manager import clear_analysis_config, load_analysis_config, save_analysis_config
from .graph_export import ascii_tree, export_dot
from .orchestrator import Analyzer
from .parser import DiscoveryError, ParserUnavailableError
from .storage import ModuleStore, ProjectManager, project_name_from_path

app = typer.Typer(
    help="ReqGraph: find which modules of a CommonJS codebase reach a method.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ReqGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-module progress."),
):
    """ReqGraph CLI: static require/export call-graph analysis."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _open_analyzer(
    project_path: Path,
    project_name: Optional[str],
    settings: Dict[str, Any],
    refresh: bool = False,
) -> Analyzer:
    pm = ProjectManager()
    resolved = project_path.resolve()
    name = project_name or project_name_from_path(resolved)
    store = ModuleStore(pm.create_or_get_project(name))
    try:
        return Analyzer(
            resolved,
            store,
            root_prefix=settings["root_prefix"],
            entry_prefix=settings["entry_prefix"],
            extensions=settings["extensions"],
            refresh=refresh,
        )
    except ParserUnavailableError as exc:
        store.close()
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)


def _settings(root_prefix: Optional[str] = None, entry_prefix: Optional[str] = None) -> Dict[str, Any]:
    settings = load_analysis_config()
    if root_prefix is not None:
        settings["root_prefix"] = root_prefix
    if entry_prefix is not None:
        settings["entry_prefix"] = entry_prefix
    return settings


@app.command("index")
def index_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source tree."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit store name for project."),
    refresh: bool = typer.Option(False, "--refresh", help="Re-parse every module, ignoring stored records."),
):
    """Parse every module and persist its symbol table."""
    from datetime import datetime

    analyzer = _open_analyzer(project_path, project_name, _settings(), refresh=refresh)
    try:
        modules = analyzer.build_module_map()
    except DiscoveryError as exc:
        analyzer.store.close()
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)

    analyzer.store.set_metadata({
        **analyzer.store.get_metadata(),
        "source_path": str(analyzer.root),
        "module_count": len(modules),
        "indexed_at": datetime.now().isoformat(),
    })
    analyzer.store.close()

    stats = analyzer.stats
    table = Table(title=f"Indexed {analyzer.root}")
    table.add_column("Files", justify="right")
    table.add_column("Parsed", justify="right")
    table.add_column("From store", justify="right")
    table.add_column("Failed", justify="right")
    table.add_row(str(stats.files), str(stats.parsed), str(stats.cached), str(stats.failed))
    console.print(table)
    typer.echo(f"Modules: {len(modules)}")


@app.command("resolve")
def resolve(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source tree."),
    entity: Optional[str] = typer.Option(None, "--entity", "-e", help="Only seed from call sites containing this text."),
    root_prefix: Optional[str] = typer.Option(None, help="Prefix stripped before comparing module paths."),
    entry_prefix: Optional[str] = typer.Option(None, help="Prefix of externally reachable modules."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Report file path."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit store name for project."),
    refresh: bool = typer.Option(False, "--refresh", help="Re-parse every module, ignoring stored records."),
):
    """Resolve entry modules reachable from call sites and write the report."""
    settings = _settings(root_prefix, entry_prefix)
    analyzer = _open_analyzer(project_path, project_name, settings, refresh=refresh)
    report_path = output or Path(settings["report_path"]).expanduser()
    try:
        report = analyzer.run(entity=entity, report_path=report_path)
    except DiscoveryError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        analyzer.store.close()

    if not report.entrypoints:
        typer.echo("No entry modules found.")
    for module in report.entrypoints:
        typer.echo(module)
    typer.echo(f"\nReport written to {report_path}")


@app.command("callers")
def callers(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source tree."),
    module: str = typer.Argument(..., help="Module path, e.g. lib/db"),
    method: str = typer.Argument(..., help="Method name matched against call sites."),
    root_prefix: Optional[str] = typer.Option(None, help="Prefix stripped before comparing module paths."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit store name for project."),
):
    """Show the modules that transitively call METHOD of MODULE."""
    analyzer = _open_analyzer(project_path, project_name, _settings(root_prefix))
    try:
        found = analyzer.callers(module, method)
    except DiscoveryError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        analyzer.store.close()

    if not found:
        typer.echo(f"No callers of '{method}' found for {module}.")
        raise typer.Exit(code=0)
    typer.echo(ascii_tree(f"{module}:{method}", found))


@app.command("show")
def show(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source tree."),
    module: str = typer.Argument(..., help="Module path, e.g. lib/db"),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit store name for project."),
):
    """Print the extracted symbol table of one module as JSON."""
    analyzer = _open_analyzer(project_path, project_name, _settings())
    try:
        modules = analyzer.build_module_map()
    except DiscoveryError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        analyzer.store.close()

    record = modules.get(module)
    if record is None:
        typer.echo(f"❌ Module '{module}' not found.", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(record.symbol_table.to_dict(), indent=2))


@app.command("export-graph")
def export_graph(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source tree."),
    entity: Optional[str] = typer.Option(None, "--entity", "-e", help="Only seed from call sites containing this text."),
    focus: str = typer.Option("", "--focus", "-f", help="Only keep edges touching modules containing this text."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit store name for project."),
):
    """Export the caller map to Graphviz DOT."""
    settings = _settings()
    analyzer = _open_analyzer(project_path, project_name, settings)
    try:
        report = analyzer.resolver().resolve(entity=entity)
    except DiscoveryError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        analyzer.store.close()

    if output is None:
        output = Path.cwd() / f"{project_name_from_path(analyzer.root)}_callers.dot"
    export_dot(report.callers, output, entry_prefix=settings["entry_prefix"], focus=focus)
    typer.echo(f"Exported graph to {output}")


@app.command("list-projects")
def list_projects():
    """List all persisted project stores."""
    pm = ProjectManager()
    projects = pm.list_projects()
    if not projects:
        typer.echo("No projects indexed yet.")
        raise typer.Exit(code=0)
    for p in projects:
        typer.echo(p)


@app.command("clear")
def clear(project_name: str = typer.Argument(..., help="Project store to delete.")):
    """Delete a project's stored module records."""
    pm = ProjectManager()
    if not pm.delete_project(project_name):
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    typer.echo(f"Cleared project '{project_name}'.")


@app.command("config")
def configure(
    root_prefix: Optional[str] = typer.Option(None, help="Prefix stripped before comparing module paths."),
    entry_prefix: Optional[str] = typer.Option(None, help="Prefix of externally reachable modules."),
    report: Optional[Path] = typer.Option(None, help="Default report file path."),
    reset: bool = typer.Option(False, "--reset", help="Drop saved settings and return to the defaults."),
):
    """Persist analysis defaults, or show them when no option is given."""
    if reset and not clear_analysis_config():
        typer.echo("❌ Could not write configuration.", err=True)
        raise typer.Exit(code=1)
    if root_prefix is not None or entry_prefix is not None or report is not None:
        if not save_analysis_config(root_prefix=root_prefix, entry_prefix=entry_prefix, report_path=report):
            typer.echo("❌ Could not write configuration.", err=True)
            raise typer.Exit(code=1)
    for key, value in load_analysis_config().items():
        typer.echo(f"{key} = {value}")


if __name__ == "__main__":
    app()
