"""Turn raw model output into validated response models."""

import json
import logging
import re
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from video_prompts.exceptions import SchemaError
from video_prompts.models.analysis import ComparisonResult, FrameAnalysis, SceneAnalysis

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

LEADING_FENCE = re.compile(r'^\s*```[\w+-]*[ \t]*\n?')
TRAILING_FENCE = re.compile(r'\n?[ \t]*```\s*$')

ENTITY_TYPES = {"person", "object", "animal"}
ENTITY_ROLES = {"protagonist", "antagonist", "context"}


def strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json marker and a trailing ``` marker, if present."""
    text = LEADING_FENCE.sub('', text, count=1)
    text = TRAILING_FENCE.sub('', text, count=1)
    return text.strip()


def drop_invalid_fields(data: dict[str, Any], error: ValidationError) -> int:
    """Delete the innermost object key on the path of every validation error.

    List items are never removed one by one; an invalid item drops the whole
    list field. Returns the number of keys removed.
    """
    removed = 0
    for detail in error.errors():
        parent, key = None, None
        node: Any = data
        for part in detail["loc"]:
            if isinstance(node, dict) and part in node:
                parent, key = node, part
                node = node[part]
            elif isinstance(node, list) and isinstance(part, int) and 0 <= part < len(node):
                node = node[part]
            else:
                break
        if parent is not None and key in parent:
            logger.debug(f"Dropping invalid field {'.'.join(map(str, detail['loc']))}: {detail['msg']}")
            del parent[key]
            removed += 1
    return removed


def normalize_tags(analysis: FrameAnalysis) -> FrameAnalysis:
    """Drop tags that repeat an object name, ignoring case. Substrings are kept."""
    objects_lower = {o.lower() for o in analysis.objects}
    analysis.tags = [tag for tag in analysis.tags if tag.lower() not in objects_lower]
    return analysis


class ResponseValidator:
    """Parse model replies as JSON and validate them per request kind.

    Missing fields always take defaults. By default, fields that are null or
    of the wrong type are dropped so they take defaults too, and range checks
    are skipped. In strict mode such fields raise ``SchemaError``,
    ``importance`` must lie in 0-10, ``confidence`` in 0-1 and entity
    type/role must be one of the documented values.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def parse_json(self, text: str) -> dict[str, Any]:
        cleaned = strip_code_fence(text)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(f"JSON parse error: {e}")
            logger.debug(f"Response text: {text}")
            raise SchemaError(f"Failed to parse AI response as JSON: {e}", raw_text=text) from e
        if not isinstance(data, dict):
            raise SchemaError(f"Expected a JSON object, got {type(data).__name__}", raw_text=text)
        return data

    def _validate(self, model: Type[M], text: str) -> M:
        data = self.parse_json(text)
        while True:
            try:
                return model.model_validate(data)
            except ValidationError as e:
                # Each pass removes at least one key, so this terminates
                if self.strict or not drop_invalid_fields(data, e):
                    raise SchemaError(f"AI response does not match {model.__name__}: {e}", raw_text=text) from e
                logger.warning(f"Ignored {e.error_count()} invalid field(s) in {model.__name__} response")

    def frame_analysis(self, text: str) -> FrameAnalysis:
        return normalize_tags(self._validate(FrameAnalysis, text))

    def comparison(self, text: str) -> ComparisonResult:
        result = self._validate(ComparisonResult, text)
        if self.strict and result.confidence is not None:
            self._check_range("confidence", result.confidence, 0, 1, text)
        return result

    def scene_analysis(self, text: str) -> SceneAnalysis:
        result = self._validate(SceneAnalysis, text)
        if self.strict:
            self._check_range("story_signals.importance", result.story_signals.importance, 0, 10, text)
            self._check_range("confidence", result.confidence, 0, 1, text)
            for entity in result.key_entities:
                if entity.type not in ENTITY_TYPES or entity.role not in ENTITY_ROLES:
                    raise SchemaError(
                        f"Entity {entity.name!r} has unsupported type/role {entity.type}/{entity.role}",
                        raw_text=text,
                    )
        return result

    @staticmethod
    def _check_range(name: str, value: float, low: float, high: float, text: str) -> None:
        if not low <= value <= high:
            raise SchemaError(f"{name}={value} is outside {low}-{high}", raw_text=text)
