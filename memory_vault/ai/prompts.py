"""Prompt templates for remote memory analysis.

Each remote call is a persona (system instruction) plus a user prompt that
asks for a JSON document in a fixed shape. Prompts carry memory content, so
they are never logged.
"""

from __future__ import annotations

import json
from typing import Any

ANALYSIS_PERSONA = (
    "You are an expert at analyzing personal memories. "
    "Always respond with valid JSON only."
)

ANALYSIS_PROMPT_TEMPLATE = """
Analyze this personal memory and return JSON only:

Title: {title}
Content: {content}

Return this exact JSON structure:
{{
  "sentiment": "positive|negative|neutral",
  "keywords": ["key", "words"],
  "suggestedTags": ["tags"],
  "emotionalTone": "tone description",
  "summary": "brief summary",
  "themes": ["themes"],
  "mood": "happy|sad|neutral|excited|reflective",
  "confidence": 0.85
}}
""".strip()

INSIGHTS_PERSONA = (
    "Generate insights about memory patterns. Return JSON only with this structure: "
    '{"insights": [{"type": "pattern|suggestion|milestone|reflection", '
    '"title": "title", "description": "description", '
    '"confidence": 0.8, "actionable": false}]}'
)

INSIGHTS_PROMPT_TEMPLATE = "Analyze these memories and return insights as JSON: {memories}"

TRANSCRIPTION_PROMPT = (
    "Transcribe this voice recording verbatim. "
    "Return only the spoken words, with no commentary."
)

UNTITLED = "Untitled Memory"


def build_analysis_prompt(content: str, title: str | None = None) -> str:
    """Render the single-memory analysis prompt."""
    return ANALYSIS_PROMPT_TEMPLATE.format(title=title or UNTITLED, content=content)


def build_insights_prompt(condensed_memories: list[dict[str, Any]]) -> str:
    """Render the collection insight prompt from condensed memory summaries."""
    return INSIGHTS_PROMPT_TEMPLATE.format(memories=json.dumps(condensed_memories))
