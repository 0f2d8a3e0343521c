"""CLI commands for storyboard and timeline."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from video_prompts.analyze.cli import (
    ENDPOINT_OPTION,
    MODEL_OPTION,
    OUTPUT_OPTION,
    RETRIES_OPTION,
    STRICT_OPTION,
    TIMEOUT_OPTION,
    VERBOSE_OPTION,
    make_client,
)
from video_prompts.models.analysis import SceneAnalysis
from video_prompts.storyboard.session import StoryboardSession
from video_prompts.storyboard.timeline import JsonTimelineStore, Timeline
from video_prompts.utils.cli import cli_error_handler, console, setup_logging, stderr_console, write_json_output


def print_scene(scene: SceneAnalysis) -> None:
    console.print(f"[bold cyan]{scene.scene_id}[/bold cyan] ({len(scene.frames)} frames, confidence {scene.confidence})")
    console.print(f"[bold]What happened:[/bold] {scene.summary.what_happened}")
    console.print(f"[bold]Change:[/bold] {scene.summary.change}")
    shift = scene.story_signals.emotional_shift
    console.print(
        f"[bold]Importance:[/bold] {scene.story_signals.importance}/10  "
        f"[bold]Emotion:[/bold] {shift.from_} -> {shift.to}"
    )
    for panel in scene.panel_guidance.panels:
        idx = panel.best_frame_index
        frame = scene.frames[idx] if 0 <= idx < len(scene.frames) else "?"
        console.print(f"  Panel {panel.panel_index} [{panel.role}] {panel.description} [dim]({frame})[/dim]")


@cli_error_handler
def storyboard(
    frames: List[str] = typer.Argument(..., help="Frame images in chronological order (at least two)"),
    output_dir: str = typer.Option(..., "--output-dir", "-d", help="Extraction folder holding timeline.json"),
    no_timeline: bool = typer.Option(False, "--no-timeline", help="Do not add the result to the timeline"),
    force: bool = typer.Option(False, "--force", "-f", help="Ask the model again even if these frames were analyzed before"),
    endpoint: str = ENDPOINT_OPTION,
    model: str = MODEL_OPTION,
    timeout: float = TIMEOUT_OPTION,
    attempts: int = RETRIES_OPTION,
    strict: bool = STRICT_OPTION,
    output: Optional[str] = OUTPUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Interpret a frame sequence as a narrative beat and suggest comic panels.

    The result is merged into the timeline of the extraction folder: a scene
    made of the same frames replaces its earlier version, a new one is appended.
    """
    setup_logging(verbose)
    client = make_client(endpoint, model, timeout, attempts, strict)
    timeline = Timeline.load(JsonTimelineStore(output_dir))
    session = StoryboardSession(client, timeline)

    with console.status(f"Analyzing narrative beats of {len(frames)} frames..."):
        result = session.analyze(frames, force=force, add_to_timeline=not no_timeline)

    if not result.success or result.analysis is None:
        stderr_console.print(f"[bold red]Story analysis failed:[/bold red] {result.error}")
        raise typer.Exit(code=1)

    if result.cached:
        console.print("[dim]Reusing the previous analysis of these frames (use --force to ask again)[/dim]")
    print_scene(result.analysis)
    if output:
        write_json_output(output, result.analysis)
    if not no_timeline:
        console.print(f"\n[bold green]Timeline:[/bold green] {len(timeline)} scene(s) in {Path(output_dir)}")


@cli_error_handler
def timeline(
    output_dir: str = typer.Argument(..., help="Extraction folder holding timeline.json"),
    remove: Optional[str] = typer.Option(None, "--remove", help="Remove the scene with this id"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    List the scenes of a timeline, or remove one.
    """
    setup_logging(verbose)
    scenes = Timeline.load(JsonTimelineStore(output_dir))

    if remove:
        if not scenes.remove(remove):
            stderr_console.print(f"[bold red]Error:[/bold red] No scene {remove} in timeline")
            raise typer.Exit(code=1)
        console.print(f"Removed {remove}")

    if len(scenes) == 0:
        console.print("No scenes added to the timeline yet.")
        return

    table = Table("#", "Scene", "Frames", "Importance", "What happened")
    for i, scene in enumerate(scenes, start=1):
        table.add_row(
            str(i), scene.scene_id, str(len(scene.frames)),
            f"{scene.story_signals.importance}", scene.summary.what_happened,
        )
    console.print(table)
