"""Pydantic models for probed videos and extracted frames."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VideoInfo(BaseModel):
    """Video information extracted from ffprobe."""

    model_config = ConfigDict(frozen=True)

    duration: float = Field(..., ge=0, description="Duration in seconds")
    fps: float = Field(..., ge=0, description="Frames per second")
    width: int = Field(..., ge=0, description="Video width in pixels")
    height: int = Field(..., ge=0, description="Video height in pixels")
    codec: str = Field("unknown", description="Codec name (e.g., h264)")
    total_frames: int = Field(..., ge=0, description="Estimated number of frames")
    bitrate: int = Field(0, ge=0, description="Container bitrate in kb/s")


class FrameType(str, Enum):
    """How a frame was selected."""
    TIME = "time"
    KEYFRAME = "keyframe"
    SCENE = "scene"


class FrameRecord(BaseModel):
    """One image written by an extraction run."""
    path: str
    type: FrameType
    ordinal: int = Field(..., ge=1)
    time: Optional[float] = None
    pts: Optional[int] = None
    frame_index: Optional[int] = None


class SceneFrameMetadata(BaseModel):
    """Timing parsed from a single showinfo line."""
    n: int
    pts: int
    pts_time: float


class ExtractionManifest(BaseModel):
    """Contents of frames.json, written next to the extracted images."""
    version: str = "1.0"
    video_file: str
    video_info: Optional[VideoInfo] = None
    frames: List[FrameRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
