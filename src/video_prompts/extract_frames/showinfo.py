"""
Correlate ffmpeg showinfo diagnostics with the images written to disk.

showinfo prints one line per frame that reaches it, e.g.

    [Parsed_showinfo_1 @ 0x55d0c8a3c0c0] n:   3 pts:  48048 pts_time:1.6016  duration:...

In scene mode the filter sits after ``select`` and ffmpeg runs with
``-vsync vfr``, so every such line corresponds to exactly one written file and
both sequences are in presentation order.
"""

import logging
import re
from pathlib import Path
from typing import List

from video_prompts.exceptions import CorrelationMismatch
from video_prompts.models.frames import FrameRecord, FrameType, SceneFrameMetadata

logger = logging.getLogger(__name__)

SHOWINFO_PATTERN: re.Pattern[str] = re.compile(
    r'\[Parsed_showinfo_\d+[^\]]*\].*?\bn:\s*(\d+)\s+pts:\s*(-?\d+)\s+pts_time:\s*(-?[0-9.]+)'
)


def parse_showinfo_line(line: str) -> SceneFrameMetadata | None:
    match = SHOWINFO_PATTERN.search(line)
    if not match:
        return None
    return SceneFrameMetadata(
        n=int(match.group(1)),
        pts=int(match.group(2)),
        pts_time=float(match.group(3)),
    )


class ShowinfoCollector:
    """Accumulate showinfo records in the order their lines are observed."""

    def __init__(self):
        self.records: List[SceneFrameMetadata] = []

    def feed(self, line: str) -> None:
        record = parse_showinfo_line(line)
        if record is not None:
            self.records.append(record)


def list_output_files(output_dir: Path, prefix: str, suffix: str = ".png") -> List[Path]:
    """Files following the extractor naming convention, sorted lexicographically by name."""
    if not output_dir.is_dir():
        return []
    names = sorted(
        f.name for f in output_dir.iterdir()
        if f.is_file() and f.name.startswith(prefix) and f.name.endswith(suffix)
    )
    return [output_dir / name for name in names]


def correlate(metadata: List[SceneFrameMetadata], files: List[Path]) -> List[FrameRecord]:
    """Pair the Nth showinfo record with the Nth sorted file.

    Raises:
        CorrelationMismatch: If the two sequences differ in length.
    """
    if len(metadata) != len(files):
        logger.error(f"showinfo reported {len(metadata)} frames, found {len(files)} files")
        raise CorrelationMismatch(len(metadata), len(files))

    return [
        FrameRecord(
            path=str(path),
            type=FrameType.SCENE,
            ordinal=i + 1,
            time=info.pts_time,
            pts=info.pts,
            frame_index=info.n,
        )
        for i, (info, path) in enumerate(zip(metadata, files))
    ]
