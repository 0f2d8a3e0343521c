#!/usr/bin/env python3
"""
Extract still frames from a video with FFmpeg: fixed-rate sampling, keyframes (I-frames) and scene changes
"""

import functools
import logging
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional

import ffmpeg
from pydantic import BaseModel, Field, ValidationError

from video_prompts.exceptions import Cancelled, ExtractionFailed, ToolUnavailable
from video_prompts.extract_frames.showinfo import ShowinfoCollector, correlate, list_output_files
from video_prompts.models.frames import ExtractionManifest, FrameRecord, FrameType, VideoInfo
from video_prompts.utils.cancel import CancelToken

TIME_PREFIX = "time_"
KEYFRAME_PREFIX = "key_"
SCENE_PREFIX = "scene_"
FRAME_SUFFIX = ".png"
MANIFEST_FILENAME = "frames.json"

# Number of stderr lines kept for error reports
STDERR_TAIL_LINES = 20

# Get logger for this module
logger = logging.getLogger(__name__)


class ExtractionOptions(BaseModel):
    """Which extraction modes to run and how."""
    time_frames: bool = True
    fps: float = Field(1.0, gt=0, description="Frames per second for time sampling")
    keyframes: bool = False
    keyframe_max_fps: Optional[float] = Field(None, gt=0, description="Upper bound on keyframes per second")
    scene_changes: bool = True
    threshold: float = Field(0.3, ge=0, le=1, description="Scene change sensitivity (lower = more frames)")
    ffmpeg_path: str = "ffmpeg"

    @property
    def mode_count(self) -> int:
        return sum([self.time_frames, self.keyframes, self.scene_changes])


def default_output_dir(video_file: str) -> Path:
    return Path(f"{video_file}_extracted")


def output_pattern(output_dir: Path, prefix: str) -> str:
    return str(output_dir / f"{prefix}%06d{FRAME_SUFFIX}")


def build_time_stream(video_file: str, output_dir: Path, fps: float):
    """fps=N sampling written as an image sequence, audio disabled."""
    return (
        ffmpeg.input(video_file)
        .filter('fps', fps=fps)
        .output(output_pattern(output_dir, TIME_PREFIX), an=None, format='image2')
    )


def keyframe_select_expr(max_fps: float | None = None) -> str:
    expr = 'eq(pict_type,I)'
    if max_fps:
        # Keep a keyframe only if it is the first one or far enough from the last kept one
        expr += f'*(isnan(prev_selected_t)+gte(t-prev_selected_t,{1 / max_fps:g}))'
    return expr


def build_keyframe_stream(video_file: str, output_dir: Path, max_fps: float | None = None):
    return (
        ffmpeg.input(video_file)
        .filter('select', keyframe_select_expr(max_fps))
        .output(output_pattern(output_dir, KEYFRAME_PREFIX), an=None, vsync='vfr', format='image2')
    )


def build_scene_stream(video_file: str, output_dir: Path, threshold: float):
    """Scene-change selection followed by showinfo, which reports each written frame on stderr."""
    return (
        ffmpeg.input(video_file)
        .filter('select', f'gt(scene,{threshold})')
        .filter('showinfo')
        .output(output_pattern(output_dir, SCENE_PREFIX), an=None, vsync='vfr', format='image2')
    )


def clear_outputs(output_dir: Path, prefix: str) -> None:
    """Remove images left by a previous run of the same mode so listings only see this run."""
    stale = list_output_files(output_dir, prefix, FRAME_SUFFIX)
    for path in stale:
        path.unlink()
    if stale:
        logger.debug(f"Removed {len(stale)} stale {prefix}* files from {output_dir}")


def _kill_on_cancel(proc: subprocess.Popen, cancel: CancelToken) -> None:
    while proc.poll() is None:
        if cancel.wait(0.2):
            proc.kill()
            return


def run_ffmpeg(
    args: List[str],
    on_stderr_line: Callable[[str], None] | None = None,
    cancel: CancelToken | None = None,
) -> None:
    """Run FFmpeg to completion, streaming stderr line by line.

    Raises:
        ToolUnavailable: If the binary cannot be spawned.
        ExtractionFailed: If FFmpeg exits with a non-zero code.
        Cancelled: If the token is cancelled while FFmpeg runs.
    """
    logger.debug(f"Running FFmpeg: {' '.join(args)}")
    try:
        proc = subprocess.Popen(args, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
    except (FileNotFoundError, PermissionError) as e:
        raise ToolUnavailable(f"Required tool not found: {args[0]}") from e

    if cancel is not None:
        watcher = threading.Thread(target=_kill_on_cancel, args=(proc, cancel), daemon=True)
        watcher.start()

    tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
    try:
        for lineb in iter(proc.stderr.readline, b''):
            line = lineb.decode('utf-8', errors='ignore').rstrip()
            tail.append(line)
            logger.debug(f"FFmpeg stderr: {line}")
            if on_stderr_line is not None:
                on_stderr_line(line)
    finally:
        proc.stderr.close()

    returncode = proc.wait()
    if cancel is not None and cancel.cancelled:
        raise Cancelled("Frame extraction cancelled")
    if returncode != 0:
        stderr_tail = "\n".join(tail)
        logger.error(f"FFmpeg exited with code {returncode}")
        raise ExtractionFailed(f"FFmpeg exited with code {returncode}", returncode, stderr_tail)


def extract_time_frames(
    video_file: str,
    output_dir: Path,
    fps: float = 1.0,
    ffmpeg_path: str = 'ffmpeg',
    cancel: CancelToken | None = None,
) -> List[FrameRecord]:
    """Sample frames at a fixed rate; frame i (1-based) is stamped i / fps seconds."""
    output_dir.mkdir(parents=True, exist_ok=True)
    clear_outputs(output_dir, TIME_PREFIX)

    logger.info(f"Extracting frames at {fps} fps...")
    stream = build_time_stream(video_file, output_dir, fps)
    run_ffmpeg(stream.compile(cmd=ffmpeg_path, overwrite_output=True), cancel=cancel)

    files = list_output_files(output_dir, TIME_PREFIX, FRAME_SUFFIX)
    logger.info(f"Extracted {len(files)} time-sampled frames")
    return [
        FrameRecord(path=str(path), type=FrameType.TIME, ordinal=i, time=i / fps)
        for i, path in enumerate(files, start=1)
    ]


def extract_keyframes(
    video_file: str,
    output_dir: Path,
    max_fps: float | None = None,
    ffmpeg_path: str = 'ffmpeg',
    cancel: CancelToken | None = None,
) -> List[FrameRecord]:
    """Extract encoder keyframes (I-frames); their timing is left unset."""
    output_dir.mkdir(parents=True, exist_ok=True)
    clear_outputs(output_dir, KEYFRAME_PREFIX)

    logger.info("Extracting keyframes (I-frames)...")
    stream = build_keyframe_stream(video_file, output_dir, max_fps)
    run_ffmpeg(stream.compile(cmd=ffmpeg_path, overwrite_output=True), cancel=cancel)

    files = list_output_files(output_dir, KEYFRAME_PREFIX, FRAME_SUFFIX)
    logger.info(f"Extracted {len(files)} keyframes")
    return [
        FrameRecord(path=str(path), type=FrameType.KEYFRAME, ordinal=i)
        for i, path in enumerate(files, start=1)
    ]


def extract_scene_changes(
    video_file: str,
    output_dir: Path,
    threshold: float = 0.3,
    ffmpeg_path: str = 'ffmpeg',
    cancel: CancelToken | None = None,
) -> List[FrameRecord]:
    """Extract frames whose scene score exceeds the threshold, with pts timing from showinfo."""
    output_dir.mkdir(parents=True, exist_ok=True)
    clear_outputs(output_dir, SCENE_PREFIX)

    logger.info(f"Extracting scene changes (threshold {threshold})...")
    collector = ShowinfoCollector()
    stream = build_scene_stream(video_file, output_dir, threshold)
    run_ffmpeg(stream.compile(cmd=ffmpeg_path, overwrite_output=True), on_stderr_line=collector.feed, cancel=cancel)

    files = list_output_files(output_dir, SCENE_PREFIX, FRAME_SUFFIX)
    frames = correlate(collector.records, files)
    logger.info(f"Detected {len(frames)} scene changes")
    return frames


def _compare_frames(a: FrameRecord, b: FrameRecord) -> int:
    if a.time is not None and b.time is not None:
        return (a.time > b.time) - (a.time < b.time)
    return (a.path > b.path) - (a.path < b.path)


def sort_frames(frames: List[FrameRecord]) -> List[FrameRecord]:
    """Order by time when both frames carry one, otherwise by path.

    Keyframes have no time, so mixed-mode ordering is only approximate.
    """
    return sorted(frames, key=functools.cmp_to_key(_compare_frames))


def write_manifest(output_dir: Path, manifest: ExtractionManifest) -> Path:
    manifest_path = output_dir / MANIFEST_FILENAME
    with open(manifest_path, 'w') as f:
        f.write(manifest.model_dump_json(indent=2))
    logger.info(f"Saved frame manifest to {manifest_path}")
    return manifest_path


def load_extraction(output_dir: str | Path) -> ExtractionManifest | None:
    """Reload a previous extraction from its manifest, dropping frames whose file is gone."""
    manifest_path = Path(output_dir) / MANIFEST_FILENAME
    if not manifest_path.exists():
        return None

    with open(manifest_path, 'r') as f:
        data = f.read()
    try:
        manifest = ExtractionManifest.model_validate_json(data)
    except ValidationError as e:
        logger.warning(f"Ignoring unreadable manifest {manifest_path}: {e}")
        return None

    existing = [frame for frame in manifest.frames if Path(frame.path).exists()]
    if len(existing) != len(manifest.frames):
        logger.warning(f"{len(manifest.frames) - len(existing)} frame(s) listed in {manifest_path} no longer exist")
        manifest.frames = existing
    logger.info(f"Reusing {len(existing)} frames from {output_dir}")
    return manifest


def extract_frames(
    video_file: str,
    output_dir: str | Path,
    options: ExtractionOptions | None = None,
    video_info: VideoInfo | None = None,
    cancel: CancelToken | None = None,
) -> ExtractionManifest:
    """
    Run every requested extraction mode and record the result in frames.json.

    Args:
        video_file: Path to the input video file
        output_dir: Directory receiving the images and the manifest
        options: Modes and their parameters (defaults: time sampling at 1 fps plus scene changes)
        video_info: Probe result stored in the manifest, if already known
        cancel: Token checked between modes and while FFmpeg runs
    """
    options = options or ExtractionOptions()
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Processing video: {video_file}")
    frames: List[FrameRecord] = []

    if options.time_frames:
        if cancel is not None:
            cancel.raise_if_cancelled()
        frames.extend(extract_time_frames(video_file, output_path, options.fps, options.ffmpeg_path, cancel))

    if options.keyframes:
        if cancel is not None:
            cancel.raise_if_cancelled()
        frames.extend(extract_keyframes(video_file, output_path, options.keyframe_max_fps, options.ffmpeg_path, cancel))

    if options.scene_changes:
        if cancel is not None:
            cancel.raise_if_cancelled()
        frames.extend(extract_scene_changes(video_file, output_path, options.threshold, options.ffmpeg_path, cancel))

    if options.mode_count > 1:
        frames = sort_frames(frames)

    manifest = ExtractionManifest(video_file=str(video_file), video_info=video_info, frames=frames)
    write_manifest(output_path, manifest)
    logger.info(f"Extracted {len(frames)} frames in total")
    return manifest


def main(
    video_file: str,
    output_dir: str | Path,
    options: ExtractionOptions,
    video_info: VideoInfo | None = None,
) -> ExtractionManifest:
    return extract_frames(video_file, output_dir, options, video_info)
