import logging
from collections.abc import Sequence
from typing import Optional

from video_prompts.analyze.client import AnalysisClient
from video_prompts.models.analysis import NarrativeResult, SceneAnalysis
from video_prompts.storyboard.timeline import NarrativeCache, Timeline, scene_id_for

logger = logging.getLogger(__name__)


class StoryboardSession:
    """Narrative analysis with last-result reuse and timeline merging."""

    def __init__(self, client: AnalysisClient, timeline: Timeline, cache: Optional[NarrativeCache] = None):
        self.client = client
        self.timeline = timeline
        self.cache = cache or NarrativeCache()

    def lookup(self, frame_paths: Sequence[str]) -> Optional[SceneAnalysis]:
        """Find a previous analysis of exactly these frames in this order.

        The in-memory cache is checked first, then the timeline, which
        carries results over from earlier runs on the same output folder.
        """
        paths = list(frame_paths)
        cached = self.cache.lookup(paths)
        if cached is not None:
            return cached
        stored = self.timeline.get(scene_id_for(paths))
        if stored is not None and stored.frames == paths:
            self.cache.store(stored)
            return stored
        return None

    def analyze(self, frame_paths: Sequence[str], force: bool = False, add_to_timeline: bool = True) -> NarrativeResult:
        """Analyze a frame sequence unless the cached result covers the same paths in the same order.

        Successful fresh results replace the cache and are merged into the timeline by scene_id.
        """
        paths = list(frame_paths)
        if not force:
            cached = self.lookup(paths)
            if cached is not None:
                logger.info(f"Reusing cached analysis {cached.scene_id}")
                return NarrativeResult(success=True, analysis=cached, cached=True)

        self.cache.clear()
        result = self.client.analyze_story_sequence(paths)
        if not result.success or result.analysis is None:
            return result

        self.cache.store(result.analysis)
        if add_to_timeline:
            replaced = self.timeline.merge(result.analysis)
            action = "Updated" if replaced else "Added"
            logger.info(f"{action} {result.analysis.scene_id} in timeline ({len(self.timeline)} scenes)")
        return result
