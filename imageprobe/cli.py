"""CLI interface for imageprobe."""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from imageprobe.config_loader import ConfigError, load_config
from imageprobe.consts import DEFAULT_CONFIG_PATH, DEFAULT_REPORT_PATH
from imageprobe.inspector import ImageInspector, InspectionOrchestrator
from imageprobe.models.model_inspection import InspectionBatchResult
from imageprobe.report import render_line, write_report
from imageprobe.runtime import PullProgressSink

app = typer.Typer(
    name="imageprobe",
    help="imageprobe - Verify a binary's presence and version across container images",
)

console = Console()


def _truncate(text: str, max_len: int = 80) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@app.command()
def check(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Images YAML file"),
    report: Path = typer.Option(DEFAULT_REPORT_PATH, "--report", "-r", help="Report output file"),
    target: str = typer.Option(None, "--target", "-t", help="Override the probed binary name"),
    concurrency: int = typer.Option(
        None, "--concurrency", min=1, help="Max concurrent inspections (default: all at once)"
    ),
    quiet_pull: bool = typer.Option(False, "--quiet-pull", help="Hide pull progress output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable INFO logging"),
) -> None:
    """Probe every configured image and write the report."""
    _configure_logging(verbose)

    try:
        probe_config = load_config(config)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    probe_target = target or probe_config.target
    image_list = probe_config.images

    inspector = ImageInspector(
        command=probe_config.command,
        target=probe_target,
        capture_stderr=probe_config.capture_stderr,
        progress=None if quiet_pull else PullProgressSink(),
    )
    orchestrator = InspectionOrchestrator(inspector, concurrency=concurrency)

    console.print(f"\n[bold]Probing {len(image_list)} images for '{probe_target}'...[/bold]\n")

    async def run_inspections() -> InspectionBatchResult:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task = progress.add_task("Inspecting...", total=len(image_list))

            def on_progress(current: int, total: int):
                progress.update(task, completed=current)

            return await orchestrator.run_batch(image_list, progress_callback=on_progress)

    result = asyncio.run(run_inspections())

    try:
        report_path = write_report(result.results, report, target=probe_target)
    except OSError as e:
        console.print(f"[red]Error writing report:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    # Display summary
    table = Table(title=f"Probe Results ({report_path})")
    table.add_column("Image", style="cyan")
    table.add_column("Result")

    for inspection in result.results:
        line = render_line(inspection, probe_target)
        detail = line.split(" - ", 1)[-1]
        style = "red" if inspection.error else "green"
        table.add_row(escape(inspection.image), f"[{style}]{escape(_truncate(detail))}[/{style}]")

    console.print(table)
    console.print(
        f"\n[bold green]Done![/bold green] {result.succeeded} probed, "
        f"{result.failed} failed in {result.duration_seconds:.1f}s"
    )


@app.command()
def images(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Images YAML file"),
) -> None:
    """List the configured images and probe settings without contacting the runtime."""
    try:
        probe_config = load_config(config)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not probe_config.images:
        console.print("[yellow]No images configured.[/yellow]")
        return

    table = Table(title=f"Configured Images ({len(probe_config.images)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Image", style="cyan")

    for index, image in enumerate(probe_config.images, 1):
        table.add_row(str(index), escape(image))

    console.print(table)
    console.print(f"\nTarget: [bold]{probe_config.target}[/bold]")
    console.print(f"Command: [dim]{' '.join(probe_config.command)}[/dim]")


if __name__ == "__main__":
    app()
