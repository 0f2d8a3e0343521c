"""Instruction prompts sent to the vision model."""

FRAME_ANALYSIS_PROMPT = """Analyze this image and return ONLY a JSON object with this exact structure:
{
"summary": "A concise description of the image content.",
"objects": ["list", "of", "visible", "objects"],
"tags": ["list", "of", "descriptive", "tags"],
"scene_type": "indoor/outdoor/portrait/etc",
"visual_elements": {
"dominant_colors": ["color1", "color2"],
"lighting": "description of lighting"
}
}
Do not include markdown formatting or explanations."""

COMPARISON_PROMPT = """You are an expert video analyst. Analyze these two sequential video frames (Start Frame and End Frame).
Describe the action taking place between them, the flow of objects, and key differences.

Return ONLY a JSON object with this exact structure:
{
  "action_description": "Detailed description of the action occurring between these frames.",
  "object_flow": "Description of how objects have moved or changed.",
  "differences": ["List of specific visual differences", "Difference 2"],
  "confidence": 0.9
}
Do not include markdown formatting."""

START_FRAME_LABEL = "Start Frame:"
END_FRAME_LABEL = "End Frame:"

STORY_SYSTEM_PROMPT = """You are a story editor turning video frames into a comic storyboard.
You receive several frames from the same video, in chronological order. Frame indices start at 0.
Identify the narrative beat they form: what happened, what changed, and what it implies.
Name the key entities (person, object or animal) and whether each acts as protagonist, antagonist or context.
Judge the emotional signal: how important the beat is (0-10), who has agency, whether the change is irreversible,
and the emotional shift from the first frame to the last.
Suggest a comic panel layout. Every panel must cite the index of the input frame that best represents it.
If the literal motion is not worth drawing, set omit_literal_action to true.

Return ONLY a JSON object with this exact structure:
{
  "summary": {
    "what_happened": "One or two sentences.",
    "change": "What is different at the end compared to the start.",
    "implied": "What this suggests happens next or why it matters.",
    "uncertainty": "What cannot be determined from the frames."
  },
  "key_entities": [
    {"name": "entity name", "type": "person", "role": "protagonist", "description": "short description"}
  ],
  "story_signals": {
    "importance": 5,
    "agency": "who or what drives the change",
    "irreversible": false,
    "emotional_shift": {"from": "calm", "to": "tense"}
  },
  "panel_guidance": {
    "panel_count": 3,
    "panel_roles": ["setup", "action", "outcome"],
    "panels": [
      {"panel_index": 0, "role": "setup", "description": "what the panel shows", "best_frame_index": 0}
    ],
    "omit_literal_action": false
  },
  "confidence": 0.8
}
Do not include markdown formatting or explanations."""


def story_user_prompt(frame_count: int) -> str:
    return f"Here are {frame_count} frames in chronological order (indices 0 to {frame_count - 1})."


def frame_label(index: int) -> str:
    return f"Frame {index}:"
