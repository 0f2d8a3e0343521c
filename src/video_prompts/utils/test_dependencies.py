import subprocess
from unittest.mock import patch

import pytest

from video_prompts.exceptions import ToolUnavailable
from video_prompts.utils.dependencies import check_ffmpeg_tool, parse_version_tuple

RUN = "video_prompts.utils.dependencies.subprocess.run"


def completed(stdout: str) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["ffmpeg", "-version"], returncode=0, stdout=stdout, stderr="")


def test_parse_version_tuple():
    assert parse_version_tuple("6.1.1") == (6, 1, 1)
    assert parse_version_tuple("7") == (7,)


@pytest.mark.parametrize("output, expected", [
    ("ffmpeg version 6.1.1-3ubuntu5 Copyright (c) 2000-2023", "6.1.1-3ubuntu5"),
    ("ffmpeg version n7.0 Copyright (c) 2000-2024", "7.0"),
    ("ffmpeg version N-112345-gabcdef Copyright", "N-112345-gabcdef"),
])
def test_detects_version(output: str, expected: str):
    with patch(RUN, return_value=completed(output)):
        assert check_ffmpeg_tool() == expected


def test_rejects_old_version():
    with patch(RUN, return_value=completed("ffmpeg version 3.4.8 Copyright")):
        with pytest.raises(ToolUnavailable, match="not supported"):
            check_ffmpeg_tool()


def test_missing_tool():
    with patch(RUN, side_effect=FileNotFoundError("ffprobe")):
        with pytest.raises(ToolUnavailable, match="not found"):
            check_ffmpeg_tool("ffprobe")


def test_unparseable_output():
    with patch(RUN, return_value=completed("command not recognised")):
        with pytest.raises(ToolUnavailable):
            check_ffmpeg_tool()
