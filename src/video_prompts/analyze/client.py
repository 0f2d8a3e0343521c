"""
Vision model client for an OpenAI-compatible chat completions endpoint (LM Studio by default).

Every call sends images inline as base64 data URIs. Endpoint, file and schema
failures are turned into ``success=False`` results here, so callers always get
a typed outcome; batch and sequential calls record failures per unit and keep
going.
"""

import base64
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from video_prompts.analyze import prompts
from video_prompts.analyze.validation import ResponseValidator
from video_prompts.exceptions import EndpointError, EndpointUnreachable, InsufficientFrames, SchemaError
from video_prompts.models.analysis import (
    AnalysisResult,
    FlowPairResult,
    FrameComparisonResult,
    NarrativeResult,
    SequentialFlowResult,
)
from video_prompts.storyboard.timeline import scene_id_for
from video_prompts.utils.cancel import CancelToken
from video_prompts.utils.config import EndpointSettings
from video_prompts.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

MIME_TYPES = {
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.bmp': 'image/bmp',
}

CONNECTION_CHECK_TIMEOUT = 3

# Failures that are reported on the result instead of raised
ANALYSIS_ERRORS = (EndpointError, SchemaError, OSError)

FrameProgress = Callable[[int, int, AnalysisResult], None]
FlowProgress = Callable[[int, int, FlowPairResult], None]


def get_mime_type(file_path: str) -> str:
    return MIME_TYPES.get(Path(file_path).suffix.lower(), 'image/png')


def image_part(file_path: str) -> Dict[str, Any]:
    """Read an image and wrap it as an image_url content part."""
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Image file not found: {file_path}")
    data = path.read_bytes()
    mime_type = get_mime_type(file_path)
    logger.debug(f"Image size: {len(data)} bytes, type: {mime_type}")
    encoded = base64.b64encode(data).decode('utf-8')
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}}


def text_part(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


class AnalysisClient:
    """Sends frame analysis requests and validates the replies."""

    def __init__(
        self,
        settings: EndpointSettings | None = None,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
        validator: ResponseValidator | None = None,
    ):
        self.settings = settings or EndpointSettings()
        self.session = session or requests.Session()
        self.retry = retry or self.settings.retry_policy()
        self.validator = validator or ResponseValidator(strict=self.settings.strict)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def build_body(
        self,
        content: List[Dict[str, Any]],
        temperature: float,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content})
        body: Dict[str, Any] = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        return body

    def _post_once(self, body: Dict[str, Any]) -> str:
        try:
            response = self.session.post(self.settings.url, json=body, timeout=self.settings.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise EndpointUnreachable(f"Cannot reach {self.settings.url}: {e}") from e
        except requests.RequestException as e:
            raise EndpointError(f"Request to {self.settings.url} failed: {e}") from e

        if not response.ok:
            raise EndpointError(
                f"LM Studio API Error: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EndpointError(f"Malformed completion response: {e}") from e
        if not isinstance(content, str):
            raise EndpointError("Completion response has no text content")
        return content

    def complete(self, body: Dict[str, Any]) -> str:
        """POST a chat completion body and return the reply text, applying the retry policy."""
        return self.retry.call(lambda: self._post_once(body))

    def check_connection(self) -> bool:
        """True if the endpoint answers its model listing."""
        try:
            response = self.session.get(self.settings.models_url, timeout=CONNECTION_CHECK_TIMEOUT)
        except requests.RequestException as e:
            logger.debug(f"Connection check failed: {e}")
            return False
        return response.ok

    # ------------------------------------------------------------------
    # Single requests
    # ------------------------------------------------------------------

    def analyze_frame(self, image_path: str) -> AnalysisResult:
        """Describe one frame: summary, objects, tags, scene type and visual elements."""
        logger.info(f"Analyzing frame: {image_path}")
        try:
            content = [text_part(prompts.FRAME_ANALYSIS_PROMPT), image_part(image_path)]
            text = self.complete(self.build_body(content, temperature=0.7))
            analysis = self.validator.frame_analysis(text)
        except ANALYSIS_ERRORS as e:
            logger.error(f"Analysis of {image_path} failed: {e}")
            return AnalysisResult(success=False, path=image_path, error=str(e))

        logger.debug(f"Analysis complete: {analysis.summary[:50]}...")
        return AnalysisResult(success=True, path=image_path, analysis=analysis)

    def compare_frames(self, frame1_path: str, frame2_path: str) -> FrameComparisonResult:
        """Describe the action between a start frame and an end frame."""
        logger.info(f"Comparing frames: {frame1_path} -> {frame2_path}")
        try:
            content = [
                text_part(prompts.COMPARISON_PROMPT),
                text_part(prompts.START_FRAME_LABEL),
                image_part(frame1_path),
                text_part(prompts.END_FRAME_LABEL),
                image_part(frame2_path),
            ]
            text = self.complete(self.build_body(content, temperature=0.6, max_tokens=500))
            comparison = self.validator.comparison(text)
        except ANALYSIS_ERRORS as e:
            logger.error(f"Comparison failed: {e}")
            return FrameComparisonResult(
                success=False, frame1_path=frame1_path, frame2_path=frame2_path, error=str(e)
            )

        return FrameComparisonResult(
            success=True, frame1_path=frame1_path, frame2_path=frame2_path, comparison=comparison
        )

    def analyze_story_sequence(self, image_paths: Sequence[str]) -> NarrativeResult:
        """Interpret 2+ ordered frames as one narrative beat with a suggested panel layout.

        Raises:
            InsufficientFrames: If fewer than two frames are given.
        """
        paths = list(image_paths)
        if len(paths) < 2:
            raise InsufficientFrames(required=2, given=len(paths))

        logger.info(f"Analyzing story sequence of {len(paths)} frames")
        try:
            content = [text_part(prompts.story_user_prompt(len(paths)))]
            for i, path in enumerate(paths):
                content.append(text_part(prompts.frame_label(i)))
                content.append(image_part(path))
            body = self.build_body(
                content, temperature=0.5, max_tokens=2000, system_prompt=prompts.STORY_SYSTEM_PROMPT
            )
            analysis = self.validator.scene_analysis(self.complete(body))
        except ANALYSIS_ERRORS as e:
            logger.error(f"Story analysis failed: {e}")
            return NarrativeResult(success=False, error=str(e))

        analysis.scene_id = scene_id_for(paths)
        analysis.frames = paths
        analysis.timestamp = datetime.now(timezone.utc).isoformat()
        logger.info(f"Story analysis complete: {analysis.scene_id}")
        return NarrativeResult(success=True, analysis=analysis)

    # ------------------------------------------------------------------
    # Serial batches
    # ------------------------------------------------------------------

    def analyze_frames_batch(
        self,
        image_paths: Sequence[str],
        on_progress: Optional[FrameProgress] = None,
        cancel: CancelToken | None = None,
    ) -> List[AnalysisResult]:
        """Analyze frames one after another, reporting progress after each."""
        total = len(image_paths)
        logger.info(f"Starting batch analysis of {total} frames")
        results: List[AnalysisResult] = []

        for i, path in enumerate(image_paths):
            if cancel is not None and cancel.cancelled:
                logger.warning(f"Batch cancelled after {i}/{total} frames")
                break
            result = self.analyze_frame(path)
            results.append(result)
            if on_progress is not None:
                on_progress(i + 1, total, result)

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Batch complete: {succeeded}/{len(results)} succeeded")
        return results

    def compare_sequential(
        self,
        image_paths: Sequence[str],
        on_progress: Optional[FlowProgress] = None,
        cancel: CancelToken | None = None,
    ) -> SequentialFlowResult:
        """Compare consecutive pairs (0,1), (1,2), ... in order.

        A failed pair is recorded and the remaining pairs still run.

        Raises:
            InsufficientFrames: If fewer than two frames are given.
        """
        paths = list(image_paths)
        if len(paths) < 2:
            raise InsufficientFrames(required=2, given=len(paths))

        total = len(paths) - 1
        results: List[FlowPairResult] = []
        for i in range(total):
            if cancel is not None and cancel.cancelled:
                logger.warning(f"Sequential analysis cancelled after {i}/{total} pairs")
                return SequentialFlowResult(success=False, results=results, cancelled=True, error="Cancelled")

            frame1, frame2 = paths[i], paths[i + 1]
            comparison = self.compare_frames(frame1, frame2)
            pair = FlowPairResult(
                index=i,
                frame1=frame1,
                frame2=frame2,
                success=comparison.success,
                comparison=comparison.comparison,
                error=comparison.error,
            )
            results.append(pair)
            if on_progress is not None:
                on_progress(i + 1, total, pair)

        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.warning(f"Sequential analysis finished with {failed}/{total} failed pairs")
        return SequentialFlowResult(success=True, results=results)
