"""Structured output parsing for auxiliary LLM steps.

Staged fallback: strip fences, direct parse, lightweight repair. Callers
supply their own documented default when every stage fails.
"""

from __future__ import annotations

import json
import re
from typing import Any


def response_text(response: Any) -> str:
    """Extract the reply text from an AG2 chat result."""
    if hasattr(response, "summary") and response.summary:
        return str(response.summary)
    if hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        return (last.get("content") or "") if isinstance(last, dict) else str(last)
    return "" if response is None else str(response)


def strip_fences(raw: str) -> str:
    """Remove markdown fences."""
    return re.sub(r"```(?:json)?|```", "", raw).strip()


def attempt_repair(raw: str) -> str | None:
    """Lightweight repair for common LLM JSON mistakes."""
    txt = raw.strip()
    if not txt:
        return None
    if "{" in txt and "}" in txt:
        txt = txt[txt.find("{"):txt.rfind("}") + 1]
    txt = txt.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")
    txt = re.sub(r",\s*([}\]])", r"\1", txt)
    txt = re.sub(r'\\(?!["\\/bfnrtu])', r'\\\\', txt)
    return txt


def parse_json_object(raw: str) -> tuple[dict[str, Any] | None, str | None]:
    """Parse the first JSON object in *raw*. Returns ``(data, error)``."""
    errors: list[str] = []
    stripped = strip_fences(raw or "")

    # Stage 1: direct parse of the outermost braces
    if "{" in stripped and "}" in stripped:
        segment = stripped[stripped.find("{"):stripped.rfind("}") + 1]
        try:
            data = json.loads(segment)
            if isinstance(data, dict):
                return data, None
            errors.append("direct: not an object")
        except ValueError as e:
            errors.append(f"direct: {e}")

    # Stage 2: repair + parse
    repaired = attempt_repair(stripped)
    if repaired:
        try:
            data = json.loads(repaired)
            if isinstance(data, dict):
                return data, None
            errors.append("repair: not an object")
        except ValueError as e:
            errors.append(f"repair: {e}")

    return None, "; ".join(errors) or "Unparseable"


def str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]
