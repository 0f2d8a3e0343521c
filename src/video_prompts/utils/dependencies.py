"""Shared utilities for checking the ffmpeg toolchain and its version."""

import re
import subprocess

from video_prompts.exceptions import ToolUnavailable


def parse_version_tuple(version_str: str) -> tuple[int, ...]:
    """Parse a version string like '6.1.1' or '7.0' into a tuple of ints."""
    return tuple(int(x) for x in version_str.split("."))


def check_ffmpeg_tool(
    tool: str = "ffmpeg",
    min_version: tuple[int, ...] = (4,),
) -> str:
    """Verify an ffmpeg-suite binary (ffmpeg or ffprobe) is available.

    Parses version from output like 'ffmpeg version 6.1.1-3ubuntu5 Copyright ...'.
    Git snapshots ('ffmpeg version N-112345-g...') are accepted without a range check.

    Returns:
        The detected version string.

    Raises:
        ToolUnavailable: If the tool is not found, cannot be run or is too old.
    """
    try:
        result = subprocess.run(
            [tool, "-version"], capture_output=True, text=True, timeout=5, check=False,
        )
    except (FileNotFoundError, PermissionError):
        raise ToolUnavailable(f"Required tool not found: {tool}")
    except subprocess.TimeoutExpired:
        raise ToolUnavailable(f"{tool} did not answer to -version")

    output = (result.stdout + result.stderr).strip()
    match = re.search(r"version\s+n?(\S+)", output)
    if not match:
        raise ToolUnavailable(f"Could not parse {tool} version from output: {output[:200]}")

    version_str = match.group(1)
    numeric = re.match(r"^(\d+(?:\.\d+)*)", version_str)
    if numeric:
        version = parse_version_tuple(numeric.group(1))
        if version < min_version:
            raise ToolUnavailable(
                f"{tool} version {version_str} is not supported. "
                f"Required: >= {'.'.join(map(str, min_version))}"
            )

    return version_str
