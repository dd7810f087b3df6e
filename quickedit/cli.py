"""
QuickEdit CLI - Command line interface for the video style pipeline.

Usage:
    quickedit process input.mp4 --style mrbeast --intensity high   # Run a job and wait for it
    quickedit status  <job_id>                                      # Show a job's state
    quickedit history <job_id>                                      # Show a job's stage log
    quickedit jobs                                                  # List recent jobs
    quickedit styles                                                # List styles, intensities, qualities
    quickedit serve                                                 # Start the HTTP server
"""

import sys
import time

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__

console = Console()

BANNER = r"""
  ___        _      _    _____    _ _ _
 / _ \ _   _(_) ___| | _| ____|__| (_) |_
| | | | | | | |/ __| |/ /  _| / _` | | __|
| |_| | |_| | | (__|   <| |__| (_| | | |_
 \__\_\\__,_|_|\___|_|\_\_____\__,_|_|\__|
"""

STATUS_COLORS = {
    "queued": "yellow",
    "processing": "cyan",
    "completed": "green",
    "error": "red",
}

OUTCOME_COLORS = {
    "success": "green",
    "completed": "green bold",
    "degraded": "yellow",
    "skipped": "dim",
    "retry": "yellow",
    "fallback": "magenta",
    "error": "red",
}


def print_banner():
    console.print(Panel(
        BANNER + "  Automated Video Style Editing",
        style="bold cyan",
        box=box.ROUNDED,
        padding=(0, 2),
    ))


def _config(db, output_dir):
    from .utils.config import PipelineConfig

    overrides = {}
    if db:
        overrides["db_path"] = db
    if output_dir:
        overrides["output_dir"] = output_dir
    return PipelineConfig.from_env().with_overrides(**overrides)


def _load_job(db, job_id):
    from .core.errors import NotFoundError
    from .core.store import JobStore

    store = JobStore(_config(db, None).db_path)
    try:
        return store, store.get(job_id)
    except NotFoundError:
        store.close()
        console.print(f"[red]Job not found:[/red] {job_id}")
        sys.exit(1)


db_option = click.option("--db", type=click.Path(dir_okay=False), default=None,
                         help="Job database path (default: ~/.quickedit/jobs.db)")


@click.group()
@click.version_option(version=__version__, prog_name="quickedit")
def cli():
    """QuickEdit - Automated video style editing with FFmpeg."""
    pass


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-s", "--style", type=str, default=None, help="Style: cinematic, mrbeast, vlog, podcast (default: cinematic)")
@click.option("-i", "--intensity", type=str, default=None, help="Intensity: light, medium, high, extreme (default: medium)")
@click.option("-q", "--quality", type=str, default=None, help="Quality: 720p, 1080p, 4k, 8k (default: 1080p)")
@click.option("--preset", type=click.Choice(["default", "youtube", "shorts", "podcast", "archive"]), default=None, help="Use a preset style configuration")
@click.option("-o", "--output-dir", type=click.Path(file_okay=False), default=None, help="Directory for the finished video")
@db_option
def process(input_file, style, intensity, quality, preset, output_dir, db):
    """Process a video and wait for the result.

    Runs the full pipeline (analyze, cut detection, style grade, jump cuts,
    caption, quality encode) and prints the job history when it finishes.
    """
    print_banner()

    from .core.jobs import StyleConfig
    from .core.service import build_service
    from .server import setup_logging
    from .utils.config import get_preset

    setup_logging(console=False)
    base = get_preset(preset) if preset else StyleConfig()
    style_config = StyleConfig(
        style=style or base.style,
        intensity=intensity or base.intensity,
        quality=quality or base.quality,
    )

    service = build_service(_config(db, output_dir))
    console.print(f"\n[bold]Processing:[/bold] {input_file}")
    console.print(f"[dim]Style: {style_config.style} | Intensity: {style_config.intensity} | "
                  f"Quality: {style_config.quality}[/dim]\n")

    job_id = service.submit(input_file, style_config)
    start_time = time.time()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Queued", total=100)
        while True:
            job = service.get(job_id)
            progress.update(task, completed=job.progress, description=job.current_step)
            if job.is_terminal:
                break
            time.sleep(0.25)
        service.wait(job_id)

    elapsed = time.time() - start_time
    _print_history(service.history(job_id))
    service.store.close()

    if job.status.value == "completed":
        console.print(f"\n[green bold]Done![/green bold] ({elapsed:.1f}s) Output: {job.output_ref}\n")
    else:
        console.print(f"\n[red bold]Failed:[/red bold] {job.message}\n")
        sys.exit(1)


@cli.command()
@click.argument("job_id")
@db_option
def status(job_id, db):
    """Show the current state of a job."""
    store, job = _load_job(db, job_id)
    store.close()

    color = STATUS_COLORS.get(job.status.value, "white")
    table = Table(title=f"Job {job.id}", box=box.ROUNDED, show_header=False, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value", style="cyan")
    table.add_row("Status", f"[{color}]{job.status.value}[/{color}]")
    table.add_row("Progress", f"{job.progress}%")
    table.add_row("Step", job.current_step)
    table.add_row("Source", job.source_ref)
    cfg = job.style_config
    table.add_row("Style", f"{cfg.style} / {cfg.intensity} / {cfg.quality}")
    table.add_row("Output", job.output_ref or "-")
    if job.message:
        table.add_row("Message", job.message)
    table.add_row("Created", job.created_at)
    table.add_row("Updated", job.updated_at or job.created_at)
    console.print(table)


@cli.command()
@click.argument("job_id")
@db_option
def history(job_id, db):
    """Show the per-stage history of a job."""
    store, job = _load_job(db, job_id)
    entries = store.history(job.id)
    store.close()
    _print_history(entries)


@cli.command()
@click.option("-n", "--limit", type=int, default=20, help="Number of jobs to show (default: 20)")
@db_option
def jobs(limit, db):
    """List recent jobs, newest first."""
    from .core.store import JobStore

    with JobStore(_config(db, None).db_path) as store:
        rows = store.list_jobs(limit=limit)

    if not rows:
        console.print("[dim]No jobs yet.[/dim]")
        return

    table = Table(title="Recent Jobs", box=box.ROUNDED)
    table.add_column("ID", style="bold")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Style")
    table.add_column("Source", style="dim")
    for job in rows:
        color = STATUS_COLORS.get(job.status.value, "white")
        table.add_row(
            job.id[:12],
            f"[{color}]{job.status.value}[/{color}]",
            f"{job.progress}%",
            job.style_config.style,
            job.source_ref,
        )
    console.print(table)


@cli.command()
def styles():
    """List available styles, intensities and qualities."""
    from .core.stages import get_available_intensities, get_available_qualities, get_available_styles

    table = Table(title="Styles", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Label")
    table.add_column("FPS", justify="right")
    table.add_column("Jump cuts", justify="center")
    table.add_column("Caption", style="cyan")
    for s in get_available_styles():
        name = f"{s['name']} (default)" if s["default"] else s["name"]
        table.add_row(name, s["label"], str(s["fps"]), "yes" if s["jump_cuts"] else "no", s["caption"])
    console.print(table)

    table = Table(title="Intensities", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Multiplier", justify="right", style="cyan")
    for i in get_available_intensities():
        name = f"{i['name']} (default)" if i["default"] else i["name"]
        table.add_row(name, f"x{i['multiplier']:g}")
    console.print(table)

    table = Table(title="Qualities", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Resolution", justify="right")
    table.add_column("CRF", justify="right", style="cyan")
    for q in get_available_qualities():
        name = f"{q['name']} (default)" if q["default"] else q["name"]
        table.add_row(name, f"{q['width']}x{q['height']}", str(q["crf"]))
    console.print(table)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", type=int, default=5680, help="Port to listen on (default: 5680)")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
def serve(host, port, debug):
    """Start the QuickEdit HTTP server."""
    from .server import run_server

    run_server(host=host, port=port, debug=debug)


def _print_history(entries):
    """Print a job's history table."""
    table = Table(title="Job History", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("Step", style="bold")
    table.add_column("Outcome")
    table.add_column("Message")
    for e in entries:
        color = OUTCOME_COLORS.get(e.outcome.value, "white")
        table.add_row(e.timestamp[11:19], e.step, f"[{color}]{e.outcome.value}[/{color}]", e.message)
    console.print(table)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
