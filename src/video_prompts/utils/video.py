import logging
from pathlib import Path
from typing import Any

import ffmpeg
from pydantic import ValidationError

from video_prompts.exceptions import ProbeError, ToolUnavailable
from video_prompts.models.frames import VideoInfo

logger: logging.Logger = logging.getLogger(__name__)


def parse_frame_rate(rate: Any) -> float:
    """Reduce an ffprobe rational like '30000/1001' to a float; a missing denominator means 1."""
    if rate is None or rate == "":
        return 0.0
    if isinstance(rate, (int, float)):
        return float(rate)
    num, _, den = str(rate).partition('/')
    denominator = float(den) if den else 1.0
    if denominator == 0:
        return 0.0
    return float(num) / denominator


def video_info_from_probe(probe: dict) -> VideoInfo:
    """Build VideoInfo from the JSON document printed by ffprobe."""
    streams = probe.get('streams') or []
    stream = next((s for s in streams if s.get('codec_type') == 'video'), None)
    if stream is None:
        raise ProbeError("No video stream found")

    container = probe.get('format') or {}
    try:
        fps = parse_frame_rate(stream.get('r_frame_rate'))
        duration = float(container.get('duration') or 0)
        bitrate = round(int(container.get('bit_rate') or 0) / 1000)
        return VideoInfo(
            duration=duration,
            fps=round(fps, 2),
            width=int(stream.get('width') or 0),
            height=int(stream.get('height') or 0),
            codec=stream.get('codec_name') or 'unknown',
            total_frames=round(duration * fps),
            bitrate=bitrate,
        )
    except (TypeError, ValueError, ValidationError) as e:
        raise ProbeError(f"Malformed ffprobe output: {e}") from e


def get_video_info(filename: str, ffprobe_path: str = 'ffprobe') -> VideoInfo:
    """Probe a video file for duration, frame rate, resolution, codec and bitrate.

    Raises:
        ProbeError: If the file is unreadable, has no video stream or ffprobe output is malformed.
        ToolUnavailable: If ffprobe cannot be executed.
    """
    if not Path(filename).is_file():
        raise ProbeError(f"Input file does not exist: {filename}")

    try:
        probe = ffmpeg.probe(filename, cmd=ffprobe_path)
    except FileNotFoundError as e:
        raise ToolUnavailable(f"Required tool not found: {ffprobe_path}") from e
    except PermissionError as e:
        raise ToolUnavailable(f"Cannot execute {ffprobe_path}: {e}") from e
    except ffmpeg.Error as e:
        stderr = e.stderr.decode('utf-8', errors='ignore').strip() if e.stderr else ''
        raise ProbeError(f"ffprobe failed for {filename}: {stderr or e}") from e
    except ValueError as e:
        # ffmpeg.probe decodes stdout with json.loads
        raise ProbeError(f"Malformed ffprobe output: {e}") from e

    video_info = video_info_from_probe(probe)
    logger.info(
        f"Video detected: {video_info.width}x{video_info.height}, {video_info.codec}, "
        f"{video_info.fps:.2f} fps, {video_info.duration:.2f}s, "
        f"{video_info.total_frames} frames, {video_info.bitrate} kb/s"
    )
    return video_info
