"""CLI entrypoints for inksite."""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .config import Config, load_config
from .errors import InksiteError, error_chain
from .fetch import fetch_material
from .generator import GenerationReport, generate_site
from .stores import LocalDocumentStore
from .verify import VerificationReport, verify_site

console = Console()
app = typer.Typer(help="Build static sites from handwritten notebooks.")

ConfigPathOption = Annotated[
    str,
    typer.Option("--config", "-c", help="Path to the configuration file or project directory."),
]
MaterialOption = Annotated[
    Path | None,
    typer.Option("--material", "-m", help="Directory holding manifest.json and the zip archives."),
]
OutputOption = Annotated[
    Path | None,
    typer.Option("--output", "-o", help="Directory the site is generated into."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


@app.command()
def version() -> None:
    """Print the installed version."""
    console.print(f"inksite {__version__}")


@app.command()
def fetch(
    config_path: ConfigPathOption = ".",
    source: Annotated[
        Path | None,
        typer.Option("--source", "-s", help="Device export directory to read documents from."),
    ] = None,
    material: MaterialOption = None,
) -> None:
    """Resolve the site root and download every notebook it references."""
    config = _load(config_path)
    if material is not None:
        config.material_dir = material.resolve()
    source_dir = source.resolve() if source is not None else config.source_dir
    if source_dir is None:
        raise typer.BadParameter("No document source given; pass --source or set source_dir.")

    store = LocalDocumentStore(source_dir)
    try:
        result = fetch_material(store, site_root=config.site_root, material_dir=config.material_dir)
    except InksiteError as exc:
        _fail("Fetch failed", exc)

    console.print(
        "[bold green]Fetched[/]: "
        f"{len(result.archives)} notebook(s) into {_display_path(config.material_dir)}"
    )


@app.command()
def generate(
    config_path: ConfigPathOption = ".",
    material: MaterialOption = None,
    output: OutputOption = None,
    prefix: Annotated[
        str | None,
        typer.Option("--prefix", "-p", help="URL prefix prepended to every link."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", "-w", min=1, help="Number of documents rendered in parallel."),
    ] = None,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Ignore the render cache and re-render every notebook."),
    ] = False,
) -> None:
    """Render notebooks and write the HTML site."""
    config = _load(config_path)
    _apply_overrides(config, material=material, output=output, prefix=prefix, workers=workers)

    if no_cache:
        console.print("[bold yellow]Full rebuild[/]: ignoring the render cache.")
    try:
        report = generate_site(config, no_cache=no_cache)
    except InksiteError as exc:
        _fail("Generation failed", exc)

    _print_generation_summary(report, config)


@app.command()
def verify(
    config_path: ConfigPathOption = ".",
    output: OutputOption = None,
    prefix: Annotated[
        str | None,
        typer.Option("--prefix", "-p", help="URL prefix the site was generated with."),
    ] = None,
) -> None:
    """Scan the generated site for links that do not resolve inside it."""
    config = _load(config_path)
    _apply_overrides(config, output=output, prefix=prefix)
    output_dir = config.output_dir

    if not output_dir.exists():
        console.print(f"[bold red]Site directory not found[/]: {_display_path(output_dir)}")
        raise typer.Exit(code=1)

    console.print(f"[bold blue]Verifying[/]: scanning HTML files under {_display_path(output_dir)}")
    report = verify_site(output_dir, config.url_prefix)
    _print_verification_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


def _apply_overrides(
    config: Config,
    *,
    material: Path | None = None,
    output: Path | None = None,
    prefix: str | None = None,
    workers: int | None = None,
) -> None:
    if material is not None:
        config.material_dir = material.resolve()
    if output is not None:
        config.output_dir = output.resolve()
    if prefix is not None:
        # Re-validate so the prefix gets the same normalization as the config file.
        config.url_prefix = Config(url_prefix=prefix).url_prefix
    if workers is not None:
        config.render.workers = workers


def _print_generation_summary(report: GenerationReport, config: Config) -> None:
    render = report.render
    console.print(
        "[bold green]Notebooks[/]: "
        f"{report.document_count} total, "
        f"{len(render.rendered)} rendered, "
        f"{len(render.reused)} reused from cache "
        f"({render.page_count} page image(s))"
    )
    if render.pruned:
        console.print(f"[bold yellow]Pruned[/]: removed pages of {render.pruned} stale notebook(s)")
    console.print(
        "[bold green]Pages[/]: "
        f"wrote {len(report.assembly.pages)} HTML file(s) to {_display_path(config.output_dir)} "
        f"(duration {report.duration_seconds:.2f}s)"
    )


def _print_verification_report(report: VerificationReport) -> None:
    if report.ok:
        console.print(
            "[bold green]Verification complete[/]: "
            f"{report.scanned_files} HTML file(s) scanned; no issues found."
        )
        return

    console.print(
        "[bold red]Verification issues[/]: "
        f"{len(report.issues)} issue(s) detected across {report.scanned_files} file(s)."
    )
    for issue in report.issues:
        console.print(
            f"[bold red]{issue.kind}[/] "
            f"{_display_path(issue.source)} -> {issue.target} :: {issue.message}"
        )


def _fail(headline: str, exc: InksiteError) -> NoReturn:
    messages = error_chain(exc)
    console.print(f"[bold red]{headline}[/]: {escape(messages[0])}")
    for message in messages[1:]:
        console.print(f"  caused by: {escape(message)}")
    raise typer.Exit(code=1) from exc


def _display_path(path: Path) -> str:
    try:
        return path.relative_to(Path.cwd()).as_posix()
    except ValueError:
        return path.as_posix()


def _load(path: str) -> Config:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise typer.BadParameter(f"Config file {path} is not valid YAML: {exc}") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


if __name__ == "__main__":
    app()
