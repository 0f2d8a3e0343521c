"""Frame extraction tests. FFmpeg is replaced by a fake process that writes images and stderr."""

import io
from pathlib import Path
from unittest.mock import patch

import pytest

from video_prompts.exceptions import Cancelled, CorrelationMismatch, ExtractionFailed, ToolUnavailable
from video_prompts.extract_frames.main import (
    MANIFEST_FILENAME,
    ExtractionOptions,
    build_keyframe_stream,
    build_scene_stream,
    build_time_stream,
    extract_frames,
    extract_keyframes,
    extract_scene_changes,
    extract_time_frames,
    load_extraction,
    sort_frames,
)
from video_prompts.models.frames import FrameRecord, FrameType
from video_prompts.utils.cancel import CancelToken

POPEN = "video_prompts.extract_frames.main.subprocess.Popen"


class FakeProcess:
    def __init__(self, stderr_lines, returncode=0):
        self.stderr = io.BytesIO("".join(f"{line}\n" for line in stderr_lines).encode())
        self.returncode = returncode

    def poll(self):
        return self.returncode

    def wait(self):
        return self.returncode

    def kill(self):
        pass


def showinfo_line(n: int, pts: int, pts_time: float) -> str:
    return (
        f"[Parsed_showinfo_1 @ 0x55d0c8a3c0c0] n:{n:4d} pts:{pts:7d} pts_time:{pts_time:<8g} "
        f"duration:512 fmt:yuv420p sar:1/1 s:1280x720 i:P iskey:0 type:P"
    )


def fake_ffmpeg(outputs: dict, stderr: dict | None = None, returncode: int = 0, calls: list | None = None):
    """Build a Popen replacement writing ``outputs[prefix]`` images for the invoked mode."""
    stderr = stderr or {}

    def _popen(args, **kwargs):
        if calls is not None:
            calls.append(args)
        pattern = Path(next(a for a in args if "%06d" in a))
        prefix = pattern.name.split("%")[0]
        for i in range(1, outputs.get(prefix, 0) + 1):
            (pattern.parent / f"{prefix}{i:06d}.png").write_bytes(b"\x89PNG")
        return FakeProcess(stderr.get(prefix, ["ffmpeg version 6.1", "Press [q] to stop"]), returncode)

    return _popen


def test_time_sampling_at_2_fps_for_10_seconds(tmp_path: Path):
    with patch(POPEN, side_effect=fake_ffmpeg({"time_": 20})):
        frames = extract_time_frames("video.mp4", tmp_path, fps=2)

    assert len(frames) == 20
    assert [f.ordinal for f in frames] == list(range(1, 21))
    assert [f.time for f in frames] == [i / 2 for i in range(1, 21)]
    assert frames[0].time == 0.5 and frames[-1].time == 10.0
    assert all(f.type == FrameType.TIME for f in frames)
    assert frames[0].path.endswith("time_000001.png")


def test_keyframes_have_no_time(tmp_path: Path):
    with patch(POPEN, side_effect=fake_ffmpeg({"key_": 3})):
        frames = extract_keyframes("video.mp4", tmp_path)

    assert [f.ordinal for f in frames] == [1, 2, 3]
    assert all(f.time is None and f.pts is None for f in frames)
    assert all(f.type == FrameType.KEYFRAME for f in frames)


def test_scene_changes_correlate_log_lines_with_sorted_files(tmp_path: Path):
    lines = [
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'video.mp4':",
        "[Parsed_showinfo_1 @ 0x55d0c8a3c0c0] config in time_base: 1/15360, frame_rate: 30/1",
        showinfo_line(0, 38400, 2.5),
        "frame=    1 fps=0.0 q=-0.0 size=N/A time=00:00:02.50 bitrate=N/A speed=5x",
        showinfo_line(1, 115200, 7.5),
        "[Parsed_showinfo_1 @ 0x55d0c8a3c0c0]   side data - stereo3d",
        showinfo_line(2, 153600, 10.0),
    ]
    with patch(POPEN, side_effect=fake_ffmpeg({"scene_": 3}, {"scene_": lines})):
        frames = extract_scene_changes("video.mp4", tmp_path, threshold=0.4)

    assert len(frames) == 3
    assert [f.time for f in frames] == [2.5, 7.5, 10.0]
    assert [f.pts for f in frames] == [38400, 115200, 153600]
    assert [f.frame_index for f in frames] == [0, 1, 2]
    assert [Path(f.path).name for f in frames] == ["scene_000001.png", "scene_000002.png", "scene_000003.png"]
    assert [f.ordinal for f in frames] == [1, 2, 3]


def test_scene_changes_fail_loudly_on_count_mismatch(tmp_path: Path):
    lines = [showinfo_line(0, 100, 1.0), showinfo_line(1, 200, 2.0)]
    with patch(POPEN, side_effect=fake_ffmpeg({"scene_": 3}, {"scene_": lines})):
        with pytest.raises(CorrelationMismatch) as excinfo:
            extract_scene_changes("video.mp4", tmp_path)

    assert excinfo.value.metadata_count == 2
    assert excinfo.value.file_count == 3
    assert isinstance(excinfo.value, ExtractionFailed)


def test_empty_scene_result_is_not_an_error(tmp_path: Path):
    with patch(POPEN, side_effect=fake_ffmpeg({})):
        assert extract_scene_changes("video.mp4", tmp_path) == []


def test_stale_files_from_previous_run_are_removed(tmp_path: Path):
    for i in range(1, 6):
        (tmp_path / f"scene_{i:06d}.png").write_bytes(b"old")
    lines = [showinfo_line(0, 100, 1.0)]
    with patch(POPEN, side_effect=fake_ffmpeg({"scene_": 1}, {"scene_": lines})):
        frames = extract_scene_changes("video.mp4", tmp_path)

    assert len(frames) == 1
    assert sorted(p.name for p in tmp_path.glob("scene_*.png")) == ["scene_000001.png"]


def test_non_zero_exit_raises_extraction_failed(tmp_path: Path):
    lines = ["video.mp4: No such file or directory"]
    with patch(POPEN, side_effect=fake_ffmpeg({}, {"time_": lines}, returncode=1)):
        with pytest.raises(ExtractionFailed) as excinfo:
            extract_time_frames("video.mp4", tmp_path)

    assert excinfo.value.returncode == 1
    assert "No such file or directory" in excinfo.value.stderr_tail


def test_missing_binary_raises_tool_unavailable(tmp_path: Path):
    with patch(POPEN, side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(ToolUnavailable):
            extract_time_frames("video.mp4", tmp_path, ffmpeg_path="/nonexistent/ffmpeg")


def test_cancelled_token_stops_before_running(tmp_path: Path):
    cancel = CancelToken()
    cancel.cancel()
    with patch(POPEN) as popen:
        with pytest.raises(Cancelled):
            extract_frames("video.mp4", tmp_path, ExtractionOptions(), cancel=cancel)
    popen.assert_not_called()


def test_combined_modes_are_sorted_and_manifest_is_written(tmp_path: Path):
    lines = [showinfo_line(0, 23040, 1.5), showinfo_line(1, 50000, 2.2)]
    calls: list = []
    options = ExtractionOptions(fps=1, keyframes=True, threshold=0.3)
    with patch(POPEN, side_effect=fake_ffmpeg({"time_": 3, "key_": 1, "scene_": 2}, {"scene_": lines}, calls=calls)):
        manifest = extract_frames("video.mp4", tmp_path, options)

    assert len(calls) == 3
    timed = [f for f in manifest.frames if f.time is not None]
    assert [f.time for f in timed] == sorted(f.time for f in timed)
    assert [f.time for f in timed] == [1.0, 1.5, 2.0, 2.2, 3.0]
    assert sum(1 for f in manifest.frames if f.type == FrameType.KEYFRAME) == 1
    assert (tmp_path / MANIFEST_FILENAME).exists()

    reloaded = load_extraction(tmp_path)
    assert reloaded is not None
    assert [f.model_dump() for f in reloaded.frames] == [f.model_dump() for f in manifest.frames]


def test_single_mode_keeps_extraction_order(tmp_path: Path):
    options = ExtractionOptions(time_frames=False, keyframes=True, scene_changes=False)
    with patch(POPEN, side_effect=fake_ffmpeg({"key_": 2})):
        manifest = extract_frames("video.mp4", tmp_path, options)

    assert [f.ordinal for f in manifest.frames] == [1, 2]


def test_load_extraction_drops_missing_files(tmp_path: Path):
    with patch(POPEN, side_effect=fake_ffmpeg({"time_": 2})):
        extract_frames("video.mp4", tmp_path, ExtractionOptions(scene_changes=False))
    (tmp_path / "time_000002.png").unlink()

    manifest = load_extraction(tmp_path)
    assert manifest is not None
    assert [Path(f.path).name for f in manifest.frames] == ["time_000001.png"]


def test_load_extraction_without_manifest(tmp_path: Path):
    assert load_extraction(tmp_path) is None


def test_sort_falls_back_to_path_without_time():
    frames = [
        FrameRecord(path="b/time_000002.png", type=FrameType.TIME, ordinal=2, time=2.0),
        FrameRecord(path="a/time_000001.png", type=FrameType.TIME, ordinal=1, time=1.0),
        FrameRecord(path="c/key_000001.png", type=FrameType.KEYFRAME, ordinal=1),
    ]
    ordered = sort_frames(frames)
    assert [f.time for f in ordered[:2]] == [1.0, 2.0]
    assert ordered[2].type == FrameType.KEYFRAME


def test_command_lines(tmp_path: Path):
    time_args = build_time_stream("in.mp4", tmp_path, 2).compile()
    assert "-an" in time_args
    assert "image2" in time_args
    assert any("fps=fps=2" in a for a in time_args)

    key_args = build_keyframe_stream("in.mp4", tmp_path).compile()
    assert any("pict_type" in a for a in key_args)
    assert "vfr" in key_args

    scene_args = build_scene_stream("in.mp4", tmp_path, 0.3).compile()
    graph = next(a for a in scene_args if "select" in a)
    assert "gt(scene" in graph and "0.3" in graph
    assert "showinfo" in graph
    assert scene_args[scene_args.index("-vsync") + 1] == "vfr"
