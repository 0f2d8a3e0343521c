"""CLI commands for check, describe, compare and flow."""

from typing import List, Optional

import typer
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from video_prompts.analyze.client import AnalysisClient
from video_prompts.utils.cli import (
    EXIT_INTERRUPT,
    cancel_on_interrupt,
    cli_error_handler,
    console,
    setup_logging,
    stderr_console,
    write_json_output,
)
from video_prompts.utils.config import DEFAULT_ENDPOINT, EndpointSettings

ENDPOINT_OPTION = typer.Option(DEFAULT_ENDPOINT, "--endpoint", envvar="VIDEO_PROMPTS_ENDPOINT", help="Chat completions URL")
MODEL_OPTION = typer.Option("local-model", "--model", envvar="VIDEO_PROMPTS_MODEL", help="Model name sent with each request")
TIMEOUT_OPTION = typer.Option(120.0, "--timeout", envvar="VIDEO_PROMPTS_TIMEOUT", help="Request timeout in seconds")
RETRIES_OPTION = typer.Option(1, "--attempts", min=1, help="Attempts per request; 1 disables retry")
STRICT_OPTION = typer.Option(False, "--strict", help="Reject responses with out-of-range scores")
OUTPUT_OPTION = typer.Option(None, "--output", "-o", help="Write the result as JSON to this file")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")


def make_client(endpoint: str, model: str, timeout: float, attempts: int, strict: bool) -> AnalysisClient:
    settings = EndpointSettings(url=endpoint, model=model, timeout=timeout, max_attempts=attempts, strict=strict)
    return AnalysisClient(settings)


def progress_bar() -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=stderr_console,
    )


@cli_error_handler
def check(
    endpoint: str = ENDPOINT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Check that the vision endpoint is reachable.
    """
    setup_logging(verbose)
    client = AnalysisClient(EndpointSettings(url=endpoint))
    if not client.check_connection():
        stderr_console.print(f"[bold red]Not reachable:[/bold red] {client.settings.models_url}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Connected:[/bold green] {client.settings.models_url}")


@cli_error_handler
def describe(
    frames: List[str] = typer.Argument(..., help="Frame images to describe"),
    endpoint: str = ENDPOINT_OPTION,
    model: str = MODEL_OPTION,
    timeout: float = TIMEOUT_OPTION,
    attempts: int = RETRIES_OPTION,
    strict: bool = STRICT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Describe each frame: summary, objects, tags, scene type and visual elements.
    """
    setup_logging(verbose)
    client = make_client(endpoint, model, timeout, attempts, strict)

    with cancel_on_interrupt() as cancel, progress_bar() as progress:
        task = progress.add_task("Analyzing frames...", total=len(frames))
        results = client.analyze_frames_batch(
            frames,
            on_progress=lambda current, total, result: progress.update(task, completed=current),
            cancel=cancel,
        )

    for result in results:
        if result.success and result.analysis is not None:
            console.print(f"[bold]{result.path}[/bold]: {result.analysis.summary}")
            if result.analysis.tags:
                console.print(f"  [dim]tags: {', '.join(result.analysis.tags)}[/dim]")
        else:
            console.print(f"[bold]{result.path}[/bold]: [red]{result.error}[/red]")

    if output:
        write_json_output(output, results)

    if cancel.cancelled and len(results) < len(frames):
        stderr_console.print(f"[bold yellow]Cancelled:[/bold yellow] {len(results)}/{len(frames)} frames analyzed")
        raise typer.Exit(code=EXIT_INTERRUPT)

    succeeded = sum(1 for r in results if r.success)
    console.print(f"\n[bold green]Done:[/bold green] {succeeded}/{len(results)} frames analyzed")
    if succeeded < len(results):
        raise typer.Exit(code=1)


@cli_error_handler
def compare(
    start_frame: str = typer.Argument(..., help="Start frame image"),
    end_frame: str = typer.Argument(..., help="End frame image"),
    endpoint: str = ENDPOINT_OPTION,
    model: str = MODEL_OPTION,
    timeout: float = TIMEOUT_OPTION,
    attempts: int = RETRIES_OPTION,
    strict: bool = STRICT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Describe the action and object flow between two frames.
    """
    setup_logging(verbose)
    client = make_client(endpoint, model, timeout, attempts, strict)
    result = client.compare_frames(start_frame, end_frame)

    if output:
        write_json_output(output, result)

    if not result.success or result.comparison is None:
        stderr_console.print(f"[bold red]Comparison failed:[/bold red] {result.error}")
        raise typer.Exit(code=1)

    comparison = result.comparison
    console.print(f"[bold]Action:[/bold] {comparison.action_description}")
    console.print(f"[bold]Flow:[/bold] {comparison.object_flow}")
    for difference in comparison.differences:
        console.print(f"  - {difference}")
    if comparison.confidence is not None:
        console.print(f"[dim]confidence: {comparison.confidence}[/dim]")


@cli_error_handler
def flow(
    frames: List[str] = typer.Argument(..., help="Frame images in order (at least two)"),
    endpoint: str = ENDPOINT_OPTION,
    model: str = MODEL_OPTION,
    timeout: float = TIMEOUT_OPTION,
    attempts: int = RETRIES_OPTION,
    strict: bool = STRICT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Compare consecutive frames (1->2, 2->3, ...) to describe the flow of action.
    """
    setup_logging(verbose)
    client = make_client(endpoint, model, timeout, attempts, strict)

    with cancel_on_interrupt() as cancel, progress_bar() as progress:
        task = progress.add_task("Analyzing transitions...", total=max(len(frames) - 1, 0))
        result = client.compare_sequential(
            frames,
            on_progress=lambda current, total, pair: progress.update(task, completed=current),
            cancel=cancel,
        )

    for pair in result.results:
        header = f"[bold]{pair.index + 1}.[/bold] {pair.frame1} -> {pair.frame2}"
        if pair.success and pair.comparison is not None:
            console.print(f"{header}\n   {pair.comparison.action_description}")
        else:
            console.print(f"{header}\n   [red]{pair.error}[/red]")

    if output:
        write_json_output(output, result)

    if result.cancelled:
        stderr_console.print(f"[bold yellow]Cancelled:[/bold yellow] {len(result.results)}/{len(frames) - 1} transitions analyzed")
        raise typer.Exit(code=EXIT_INTERRUPT)

    console.print(f"\n[bold green]Done:[/bold green] {len(result.results)} transitions analyzed")
