"""
Scene identity, the last-analysis cache and the persisted story timeline.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Sequence

from pydantic import TypeAdapter

from video_prompts.models.analysis import SceneAnalysis

TIMELINE_FILENAME = "timeline.json"
SCENE_ID_PREFIX = "scene_"
SCENE_ID_LENGTH = 12

logger = logging.getLogger(__name__)

_scene_list = TypeAdapter(List[SceneAnalysis])


def scene_id_for(frame_paths: Sequence[str]) -> str:
    """Stable identifier of a frame set; the order of ``frame_paths`` does not matter."""
    joined = "\n".join(sorted(frame_paths))
    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return f"{SCENE_ID_PREFIX}{digest[:SCENE_ID_LENGTH]}"


class NarrativeCache:
    """Holds the most recent narrative result.

    A lookup only hits for the exact same paths in the exact same order, even
    though reordered paths share a scene_id: the narrative itself depends on
    frame order.
    """

    def __init__(self):
        self._last: Optional[SceneAnalysis] = None

    @property
    def last(self) -> Optional[SceneAnalysis]:
        return self._last

    def lookup(self, frame_paths: Sequence[str]) -> Optional[SceneAnalysis]:
        if self._last is None:
            return None
        if json.dumps(list(frame_paths)) == json.dumps(self._last.frames):
            return self._last
        return None

    def store(self, analysis: SceneAnalysis) -> None:
        self._last = analysis

    def clear(self) -> None:
        self._last = None


class TimelineStore(Protocol):
    """Persistence port for the timeline."""

    def load(self) -> List[SceneAnalysis]: ...

    def save(self, scenes: List[SceneAnalysis]) -> None: ...


class JsonTimelineStore:
    """Stores the timeline as a JSON array in the extraction output directory."""

    def __init__(self, output_dir: str | Path):
        self.path = Path(output_dir) / TIMELINE_FILENAME

    def load(self) -> List[SceneAnalysis]:
        if not self.path.exists():
            return []
        with open(self.path, 'r') as f:
            data = f.read()
        return _scene_list.validate_json(data)

    def save(self, scenes: List[SceneAnalysis]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'wb') as f:
            f.write(_scene_list.dump_json(scenes, indent=2, by_alias=True))
        logger.debug(f"Saved {len(scenes)} scene(s) to {self.path}")


class Timeline:
    """Ordered scenes, written through to the store on every change."""

    def __init__(self, store: TimelineStore, scenes: Optional[List[SceneAnalysis]] = None):
        self.store = store
        self.scenes: List[SceneAnalysis] = list(scenes or [])

    @classmethod
    def load(cls, store: TimelineStore) -> "Timeline":
        scenes = store.load()
        logger.info(f"Loaded timeline with {len(scenes)} scene(s)")
        return cls(store, scenes)

    def __len__(self) -> int:
        return len(self.scenes)

    def __iter__(self) -> Iterator[SceneAnalysis]:
        return iter(self.scenes)

    def index_of(self, scene_id: str) -> int:
        for i, scene in enumerate(self.scenes):
            if scene.scene_id == scene_id:
                return i
        return -1

    def get(self, scene_id: str) -> Optional[SceneAnalysis]:
        idx = self.index_of(scene_id)
        return self.scenes[idx] if idx >= 0 else None

    def merge(self, scene: SceneAnalysis) -> bool:
        """Replace the scene with the same id in place, or append it. Returns True on replacement."""
        idx = self.index_of(scene.scene_id)
        if idx >= 0:
            self.scenes[idx] = scene
        else:
            self.scenes.append(scene)
        self.store.save(self.scenes)
        return idx >= 0

    def remove(self, scene_id: str) -> bool:
        idx = self.index_of(scene_id)
        if idx < 0:
            return False
        del self.scenes[idx]
        self.store.save(self.scenes)
        return True
