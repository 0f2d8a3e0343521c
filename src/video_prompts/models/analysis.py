"""Pydantic models for vision model responses and analysis outcomes."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResponseModel(BaseModel):
    """Base for shapes returned by the model; unknown keys are kept as-is."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class VisualElements(ResponseModel):
    dominant_colors: List[str] = Field(default_factory=list)
    lighting: str = ""


class FrameAnalysis(ResponseModel):
    """Description of a single frame."""
    summary: str = ""
    objects: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    scene_type: str = ""
    visual_elements: VisualElements = Field(default_factory=VisualElements)


class ComparisonResult(ResponseModel):
    """Action and flow between a start frame and an end frame."""
    action_description: str = ""
    object_flow: str = ""
    differences: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class SceneSummary(ResponseModel):
    what_happened: str = ""
    change: str = ""
    implied: str = ""
    uncertainty: str = ""


class KeyEntity(ResponseModel):
    name: str = ""
    type: str = "object"
    role: str = "context"
    description: str = ""


class EmotionalShift(ResponseModel):
    from_: str = Field("", alias="from")
    to: str = ""


class StorySignals(ResponseModel):
    importance: float = 0
    agency: str = ""
    irreversible: bool = False
    emotional_shift: EmotionalShift = Field(default_factory=EmotionalShift)


class Panel(ResponseModel):
    panel_index: int = 0
    role: str = ""
    description: str = ""
    best_frame_index: int = 0


class PanelGuidance(ResponseModel):
    panel_count: int = 0
    panel_roles: List[str] = Field(default_factory=list)
    panels: List[Panel] = Field(default_factory=list)
    omit_literal_action: bool = False


class SceneAnalysis(ResponseModel):
    """Narrative interpretation of an ordered set of frames.

    ``frames`` and ``timestamp`` are filled in by the client after the model
    answers; ``scene_id`` is derived from ``frames``.
    """
    scene_id: str = ""
    summary: SceneSummary = Field(default_factory=SceneSummary)
    key_entities: List[KeyEntity] = Field(default_factory=list)
    story_signals: StorySignals = Field(default_factory=StorySignals)
    panel_guidance: PanelGuidance = Field(default_factory=PanelGuidance)
    confidence: float = 0
    frames: List[str] = Field(default_factory=list)
    timestamp: Optional[str] = None


class AnalysisResult(BaseModel):
    """Result of an analysis attempt on one frame."""
    success: bool
    path: str
    analysis: Optional[FrameAnalysis] = None
    error: Optional[str] = None


class FrameComparisonResult(BaseModel):
    """Result of comparing two frames."""
    success: bool
    frame1_path: str
    frame2_path: str
    comparison: Optional[ComparisonResult] = None
    error: Optional[str] = None


class FlowPairResult(BaseModel):
    """One consecutive pair inside a sequential flow analysis."""
    index: int
    frame1: str
    frame2: str
    success: bool
    comparison: Optional[ComparisonResult] = None
    error: Optional[str] = None


class SequentialFlowResult(BaseModel):
    success: bool
    results: List[FlowPairResult] = Field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None


class NarrativeResult(BaseModel):
    success: bool
    analysis: Optional[SceneAnalysis] = None
    error: Optional[str] = None
    cached: bool = False
