"""AnalysisClient tests. The HTTP session is replaced by a scripted fake."""

import base64
import json
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from video_prompts.analyze.client import AnalysisClient, get_mime_type
from video_prompts.exceptions import InsufficientFrames
from video_prompts.storyboard.timeline import scene_id_for
from video_prompts.utils.cancel import CancelToken
from video_prompts.utils.config import EndpointSettings
from video_prompts.utils.retry import RetryPolicy

FRAME_JSON = {
    "summary": "A dog runs across a lawn.",
    "objects": ["Dog", "ball", "tree"],
    "tags": ["dog", "outdoor", "Tree", "ball game"],
    "scene_type": "outdoor",
    "visual_elements": {"dominant_colors": ["green"], "lighting": "daylight"},
}

COMPARISON_JSON = {
    "action_description": "The dog jumps to catch the ball.",
    "object_flow": "Ball moves from left to right.",
    "differences": ["dog is airborne"],
    "confidence": 0.8,
}

SCENE_JSON = {
    "summary": {"what_happened": "A dog catches a ball.", "change": "ball caught", "implied": "play", "uncertainty": "none"},
    "key_entities": [{"name": "dog", "type": "animal", "role": "protagonist", "description": "brown dog"}],
    "story_signals": {"importance": 6, "agency": "dog", "irreversible": False, "emotional_shift": {"from": "eager", "to": "proud"}},
    "panel_guidance": {
        "panel_count": 2,
        "panel_roles": ["setup", "payoff"],
        "panels": [
            {"panel_index": 0, "role": "setup", "description": "dog waits", "best_frame_index": 0},
            {"panel_index": 1, "role": "payoff", "description": "dog catches", "best_frame_index": 2},
        ],
        "omit_literal_action": True,
    },
    "confidence": 0.7,
}


def completion(content) -> Mock:
    response = Mock(ok=True, status_code=200, reason="OK")
    response.json.return_value = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    return response


def http_error(status: int, reason: str) -> Mock:
    return Mock(ok=False, status_code=status, reason=reason)


def make_client(*responses, retry: RetryPolicy | None = None, strict: bool = False):
    session = Mock(spec=requests.Session)
    session.post.side_effect = list(responses)
    client = AnalysisClient(EndpointSettings(strict=strict), session=session, retry=retry)
    return client, session


@pytest.fixture
def frames(tmp_path: Path) -> list[str]:
    paths = []
    for i in range(4):
        path = tmp_path / f"scene_{i + 1:06d}.png"
        path.write_bytes(b"\x89PNG fake " + bytes([i]))
        paths.append(str(path))
    return paths


def test_mime_types():
    assert get_mime_type("a.JPG") == "image/jpeg"
    assert get_mime_type("a.webp") == "image/webp"
    assert get_mime_type("a.bmp") == "image/bmp"
    assert get_mime_type("a.tiff") == "image/png"


def test_analyze_frame_request_and_normalization(frames):
    client, session = make_client(completion("```json\n" + json.dumps(FRAME_JSON) + "\n```"))
    result = client.analyze_frame(frames[0])

    assert result.success
    assert result.path == frames[0]
    assert result.analysis.tags == ["outdoor", "ball game"]

    url = session.post.call_args.args[0]
    body = session.post.call_args.kwargs["json"]
    assert url == "http://localhost:1234/v1/chat/completions"
    assert body["model"] == "local-model"
    assert body["temperature"] == 0.7
    assert "max_tokens" not in body
    content = body["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert content[1]["type"] == "image_url"
    expected = base64.b64encode(Path(frames[0]).read_bytes()).decode()
    assert content[1]["image_url"]["url"] == f"data:image/png;base64,{expected}"


def test_analyze_frame_missing_file_is_a_failed_result(tmp_path: Path):
    client, session = make_client()
    result = client.analyze_frame(str(tmp_path / "missing.png"))
    assert not result.success
    assert "not found" in result.error
    session.post.assert_not_called()


def test_analyze_frame_unparseable_reply(frames):
    client, _ = make_client(completion("I see a dog."))
    result = client.analyze_frame(frames[0])
    assert not result.success
    assert "JSON" in result.error


def test_endpoint_unreachable_is_a_failed_result(frames):
    client, _ = make_client(requests.ConnectionError("refused"))
    result = client.analyze_frame(frames[0])
    assert not result.success
    assert "Cannot reach" in result.error


def test_http_error_is_a_failed_result(frames):
    client, _ = make_client(http_error(500, "Internal Server Error"))
    result = client.compare_frames(frames[0], frames[1])
    assert not result.success
    assert "500" in result.error


def test_compare_frames_labels_start_and_end(frames):
    client, session = make_client(completion(json.dumps(COMPARISON_JSON)))
    result = client.compare_frames(frames[0], frames[1])

    assert result.success
    assert result.comparison.confidence == 0.8
    body = session.post.call_args.kwargs["json"]
    assert body["temperature"] == 0.6
    assert body["max_tokens"] == 500
    texts = [part.get("text") for part in body["messages"][0]["content"]]
    assert texts[1] == "Start Frame:"
    assert texts[3] == "End Frame:"


def test_batch_reports_progress_and_isolates_failures(frames):
    client, _ = make_client(
        completion(json.dumps(FRAME_JSON)),
        requests.Timeout("slow"),
        completion(json.dumps(FRAME_JSON)),
    )
    progress = []
    results = client.analyze_frames_batch(frames[:3], on_progress=lambda c, t, r: progress.append((c, t, r.success)))

    assert [r.success for r in results] == [True, False, True]
    assert progress == [(1, 3, True), (2, 3, False), (3, 3, True)]


@pytest.mark.parametrize("count", [2, 3, 4])
def test_sequential_flow_yields_n_minus_one_pairs(frames, count):
    replies = [completion(json.dumps(COMPARISON_JSON)) for _ in range(count - 1)]
    client, session = make_client(*replies)
    progress = []
    result = client.compare_sequential(frames[:count], on_progress=lambda c, t, p: progress.append((c, t, p.index)))

    assert result.success
    assert len(result.results) == count - 1
    assert [p.index for p in result.results] == list(range(count - 1))
    assert [(p.frame1, p.frame2) for p in result.results] == [(frames[i], frames[i + 1]) for i in range(count - 1)]
    assert progress == [(i + 1, count - 1, i) for i in range(count - 1)]
    assert session.post.call_count == count - 1


@pytest.mark.parametrize("count", [0, 1])
def test_sequential_flow_needs_two_frames(frames, count):
    client, session = make_client()
    with pytest.raises(InsufficientFrames):
        client.compare_sequential(frames[:count])
    session.post.assert_not_called()


def test_sequential_flow_keeps_going_after_a_failed_pair(frames):
    client, _ = make_client(
        completion(json.dumps(COMPARISON_JSON)),
        completion("not json"),
        completion(json.dumps(COMPARISON_JSON)),
    )
    result = client.compare_sequential(frames)

    assert result.success
    assert [p.success for p in result.results] == [True, False, True]
    assert result.results[1].comparison is None
    assert result.results[1].error


def test_sequential_flow_cancellation(frames):
    cancel = CancelToken()
    client, session = make_client(completion(json.dumps(COMPARISON_JSON)))

    def on_progress(current, total, pair):
        cancel.cancel()

    result = client.compare_sequential(frames, on_progress=on_progress, cancel=cancel)
    assert result.cancelled
    assert not result.success
    assert len(result.results) == 1
    assert session.post.call_count == 1


def test_story_sequence_enriches_result(frames):
    client, session = make_client(completion(json.dumps(SCENE_JSON)))
    ordered = [frames[2], frames[0], frames[1]]
    result = client.analyze_story_sequence(ordered)

    assert result.success
    analysis = result.analysis
    assert analysis.frames == ordered
    assert analysis.scene_id == scene_id_for(frames[:3])
    assert analysis.timestamp
    assert analysis.story_signals.emotional_shift.from_ == "eager"
    assert analysis.panel_guidance.panels[1].best_frame_index == 2

    body = session.post.call_args.kwargs["json"]
    assert body["messages"][0]["role"] == "system"
    images = [part for part in body["messages"][1]["content"] if part["type"] == "image_url"]
    assert len(images) == 3


def test_story_sequence_needs_two_frames(frames):
    client, session = make_client()
    with pytest.raises(InsufficientFrames):
        client.analyze_story_sequence(frames[:1])
    session.post.assert_not_called()


def test_retry_policy_retries_unreachable_endpoint(frames):
    delays = []
    retry = RetryPolicy(max_attempts=3, backoff_factor=2.0, sleep=delays.append)
    client, session = make_client(
        requests.ConnectionError("refused"),
        requests.ConnectionError("refused"),
        completion(json.dumps(FRAME_JSON)),
        retry=retry,
    )
    result = client.analyze_frame(frames[0])

    assert result.success
    assert session.post.call_count == 3
    assert delays == [1.0, 2.0]


def test_retry_policy_does_not_retry_schema_errors(frames):
    retry = RetryPolicy(max_attempts=3, sleep=lambda _: None)
    client, session = make_client(completion("nope"), retry=retry)
    result = client.analyze_frame(frames[0])

    assert not result.success
    assert session.post.call_count == 1


def test_default_policy_makes_a_single_attempt(frames):
    client, session = make_client(requests.ConnectionError("refused"))
    result = client.analyze_frame(frames[0])
    assert not result.success
    assert session.post.call_count == 1


def test_check_connection():
    session = Mock(spec=requests.Session)
    session.get.return_value = Mock(ok=True)
    client = AnalysisClient(session=session)
    assert client.check_connection()
    assert session.get.call_args.args[0] == "http://localhost:1234/v1/models"

    session.get.side_effect = requests.ConnectionError("refused")
    assert not client.check_connection()
