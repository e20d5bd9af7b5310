"""
Helpers for cleaning up model responses.
"""

import json
import re


def strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from text if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines and lines[0].strip().startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()


def extract_json_object(text: str) -> dict:
    """Parse a JSON object out of a model response.

    Accepts a bare object, a fenced ```json block, or an object surrounded
    by explanation text.

    Raises:
        ValueError: if no JSON object can be parsed
    """
    cleaned = strip_markdown_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        fence_match = re.search(r'```(?:json)?\s*\n(\{[\s\S]*?\})\s*\n```', text)
        candidate = fence_match.group(1) if fence_match else cleaned[cleaned.find("{"):cleaned.rfind("}") + 1]
        if not candidate:
            raise ValueError("Response does not contain a JSON object") from None
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in response: {e}") from None

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
