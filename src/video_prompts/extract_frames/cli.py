"""CLI commands for probe and extract."""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from video_prompts.extract_frames.main import ExtractionOptions, default_output_dir, load_extraction, main
from video_prompts.utils.cli import cli_error_handler, console, setup_logging, write_json_output
from video_prompts.utils.dependencies import check_ffmpeg_tool
from video_prompts.utils.video import get_video_info


def _validate_input(input_file: str) -> None:
    input_path = Path(input_file)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file does not exist: {input_file}")
    if not input_path.is_file():
        raise ValueError(f"Input path is not a file: {input_file}")


@cli_error_handler
def probe(
    input_file: str = typer.Argument(..., help="Path to the input video file"),
    ffprobe_path: str = typer.Option("ffprobe", "--ffprobe", help="ffprobe binary to use"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the video info as JSON to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    Show duration, frame rate, resolution, codec and bitrate of a video.
    """
    setup_logging(verbose)
    _validate_input(input_file)

    info = get_video_info(input_file, ffprobe_path)
    minutes, seconds = divmod(int(info.duration), 60)

    table = Table(show_header=False)
    table.add_row("Duration", f"{minutes}:{seconds:02d}")
    table.add_row("FPS", f"{info.fps}")
    table.add_row("Resolution", f"{info.width}x{info.height}")
    table.add_row("Codec", info.codec)
    table.add_row("Bitrate", f"{info.bitrate} kb/s")
    table.add_row("Total Frames", f"{info.total_frames}")
    console.print(table)

    if output:
        write_json_output(output, info)


@cli_error_handler
def extract(
    input_file: str = typer.Argument(..., help="Path to the input video file"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-d", help="Output folder (default: <video>_extracted)"),
    fps: float = typer.Option(1.0, "--fps", help="Frames per second for time sampling (default: 1)"),
    no_time_frames: bool = typer.Option(False, "--no-time-frames", help="Disable fixed-rate time sampling"),
    keyframes: bool = typer.Option(False, "--keyframes", "-k", help="Also extract keyframes (I-frames)"),
    keyframe_max_fps: Optional[float] = typer.Option(None, "--keyframe-max-fps", help="Keep at most this many keyframes per second"),
    no_scene_changes: bool = typer.Option(False, "--no-scene-changes", help="Disable scene change detection"),
    threshold: float = typer.Option(0.3, "--threshold", "-t", help="Scene change threshold, 0.0-1.0 (lower = more sensitive, default: 0.3)"),
    reuse: bool = typer.Option(False, "--reuse", help="Reuse frames from a previous extraction in the output folder"),
    ffmpeg_path: str = typer.Option("ffmpeg", "--ffmpeg", help="ffmpeg binary to use"),
    ffprobe_path: str = typer.Option("ffprobe", "--ffprobe", help="ffprobe binary to use"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    Extract still frames from a video.

    Frames are sampled at a fixed rate, taken from keyframes (I-frames) and/or
    picked where FFmpeg's scene score exceeds the threshold. Images and a
    frames.json manifest are written to the output folder.
    """
    setup_logging(verbose)
    logger = logging.getLogger(__name__)
    _validate_input(input_file)

    output_path = Path(output_dir) if output_dir else default_output_dir(input_file)

    if reuse:
        manifest = load_extraction(output_path)
        if manifest is not None and manifest.frames:
            console.print(f"[bold green]Reused[/bold green] {len(manifest.frames)} frames from: {output_path}")
            return
        logger.info("No previous extraction found, extracting")

    options = ExtractionOptions(
        time_frames=not no_time_frames,
        fps=fps,
        keyframes=keyframes,
        keyframe_max_fps=keyframe_max_fps,
        scene_changes=not no_scene_changes,
        threshold=threshold,
        ffmpeg_path=ffmpeg_path,
    )
    if options.mode_count == 0:
        raise ValueError("Nothing to extract: enable at least one of time frames, keyframes or scene changes")

    version = check_ffmpeg_tool(ffmpeg_path)
    logger.debug(f"ffmpeg version: {version}")

    video_info = get_video_info(input_file, ffprobe_path)
    manifest = main(input_file, output_path, options, video_info)

    counts = {}
    for frame in manifest.frames:
        counts[frame.type.value] = counts.get(frame.type.value, 0) + 1
    details = ", ".join(f"{count} {kind}" for kind, count in counts.items()) or "no frames"
    console.print(f"\n[bold green]Success![/bold green] {len(manifest.frames)} frames ({details}) saved to: {output_path}")
