"""Layered instruction builder for the interviewer model.

Layer 1 is a fixed identity text. Layer 2 describes the session and
summarizes the contour map. Layer 3 is the current section's guidance.
Summaries are rebuilt from the map on every call.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

from ..models import ConflictStatus, ContourMap, IntelBrief, Session, TaskStatus
from ..tools.contour_store import flatten_names
from ..tools.live_data import LiveSystemData
from .section_prompts import section_prompt

NOTHING_CONFIRMED = "Nothing confirmed yet."
NOTHING_UNRESOLVED = "No unresolved items."
LAYER_SEPARATOR = "\n\n---\n\n"
MAX_LISTED_NAMES = 10

IDENTITY_PROMPT = """You are the Contour Onboarding Agent. You learn how an enterprise is organized by interviewing one of its stakeholders.

CORE BEHAVIORS:
- Ask ONE question at a time. At most two sentences before asking for input.
- Prefer showing data and asking for confirmation over open-ended questions.
- NEVER show concept ids, field names, database columns or confidence scores.
- Speak the stakeholder's business language and mirror their vocabulary.
- Keep the whole interview to 60-90 minutes.
- After two exchanges stuck on one topic, offer to park it and move on.
- Be warm and professional, like a knowledgeable consultant.

TOOL USAGE:
- Call update_contour as soon as the stakeholder gives organizational data. Do not wait for a separate confirmation.
- Use show_comparison to present conflicting values from several systems.
- Use show_hierarchy for organizational trees. Show a tree once; if the stakeholder moves on, treat it as confirmed.
- Use show_table for tabular data.
- Use park_item for stalled topics.
- Use advance_section when the exit conditions are met or the stakeholder clearly wants to move on.
- Use process_file to read an uploaded file and lookup_system_data to query discovered systems.
- Always structure data with tools instead of describing it in prose.
- You may call several tools in one response.

FLOW MANAGEMENT:
- Answers that belong to another section are still recorded with update_contour under the right dimension. Acknowledge them briefly and steer back.
- When the stakeholder says "move on" or similar, call advance_section without another confirmation question.
- Never ask the same question more than twice. Park it instead.

NEVER:
- Invent or assume organizational data. Record only what the stakeholder confirms.
- Ask for data in a specific format. Accept what they give you.
- Skip a section silently. Complete it or park it.
- Loop on confirmations. Anything other than a correction confirms a shown hierarchy."""


class SessionContext(BaseModel):
    """Inputs of the session context layer."""
    customer_name: str
    stakeholder_name: str
    stakeholder_role: str
    intel_brief: str | None = None
    premeet_artifacts: list[str] = []
    confirmed_items_summary: str = NOTHING_CONFIRMED
    unresolved_items_summary: str = NOTHING_UNRESOLVED
    uploaded_files_summary: str = ""
    live_system_data: str = ""


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def summarize_confirmed(contour_map: ContourMap) -> str:
    parts: list[str] = []

    if contour_map.organizational_hierarchy:
        names = flatten_names(contour_map.organizational_hierarchy)
        listed = ", ".join(names[:MAX_LISTED_NAMES])
        if len(names) > MAX_LISTED_NAMES:
            listed += f" (+{len(names) - MAX_LISTED_NAMES} more)"
        parts.append(f"Org structure: {listed}")

    if contour_map.sor_authority_map:
        entries = ", ".join(f"{e.dimension} → {e.system}" for e in contour_map.sor_authority_map)
        parts.append(f"Systems of record: {entries}")

    if contour_map.management_overlay:
        parts.append(f"Management overlay: {len(contour_map.management_overlay)} nodes captured")

    if contour_map.vocabulary_map:
        parts.append(f"Vocabulary: {', '.join(v.term for v in contour_map.vocabulary_map)}")

    if contour_map.priority_queries:
        parts.append(f"Priority queries: {len(contour_map.priority_queries)} captured")

    return "\n".join(parts) or NOTHING_CONFIRMED


def summarize_unresolved(contour_map: ContourMap) -> str:
    parts: list[str] = []

    open_conflicts = [c for c in contour_map.conflict_register if c.status is ConflictStatus.OPEN]
    if open_conflicts:
        parts.append(f"Open conflicts: {', '.join(c.dimension for c in open_conflicts)}")

    open_tasks = [t for t in contour_map.follow_up_tasks if t.status is TaskStatus.OPEN]
    if open_tasks:
        parts.append(f"Parked items: {'; '.join(t.description for t in open_tasks)}")

    return "\n".join(parts) or NOTHING_UNRESOLVED


def summarize_uploads(contour_map: ContourMap) -> str:
    return ", ".join(f"{a.filename} ({a.type})" for a in contour_map.uploaded_artifacts)


def format_intel_brief(brief: IntelBrief | None) -> str | None:
    """Render an intelligence brief as prompt text."""
    if brief is None:
        return None
    lines = [brief.company_overview, f"Industry: {brief.industry}"]
    if brief.public_structure:
        lines.append(f"Public structure: {', '.join(brief.public_structure)}")
    if brief.known_systems:
        lines.append(f"Known systems: {', '.join(brief.known_systems)}")
    if brief.recent_events:
        lines.append(f"Recent events: {'; '.join(brief.recent_events)}")
    if brief.suggested_questions:
        lines.append("Suggested questions:")
        lines.extend(f"- {q}" for q in brief.suggested_questions)
    return "\n".join(lines)


def _compact(data: dict[str, Any], limit: int = 1500) -> str:
    text = json.dumps(data, ensure_ascii=False, default=str)
    return text if len(text) <= limit else text[:limit] + " ..."


def format_live_data(live_data: LiveSystemData | None) -> str:
    """Render the live lookups. Missing lookups are left out entirely."""
    if live_data is None or live_data.is_empty:
        return ""
    parts: list[str] = []
    if live_data.asset_inventory is not None:
        systems = live_data.asset_inventory.get("systems") or []
        names = ", ".join(
            f"{s.get('name', '?')} ({s.get('type', '?')})" for s in systems if isinstance(s, dict)
        )
        parts.append(f"Discovered systems ({len(systems)}): {names}")
    if live_data.topology is not None:
        connections = live_data.topology.get("connections") or []
        flows = ", ".join(
            f"{c.get('source_system', '?')} -> {c.get('target_system', '?')}"
            for c in connections[:20] if isinstance(c, dict)
        )
        parts.append(f"System connections ({len(connections)}): {flows}")
    if live_data.graph_summary is not None:
        parts.append(f"Existing graph: {_compact(live_data.graph_summary)}")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

def build_session_context(
    session: Session,
    contour_map: ContourMap,
    live_data: LiveSystemData | None = None,
) -> SessionContext:
    return SessionContext(
        customer_name=session.customer_name,
        stakeholder_name=session.stakeholder_name,
        stakeholder_role=session.stakeholder_role,
        intel_brief=format_intel_brief(session.intel_brief),
        premeet_artifacts=list(session.premeet_artifacts_received),
        confirmed_items_summary=summarize_confirmed(contour_map),
        unresolved_items_summary=summarize_unresolved(contour_map),
        uploaded_files_summary=summarize_uploads(contour_map),
        live_system_data=format_live_data(live_data),
    )


def render_context_layer(ctx: SessionContext) -> str:
    sections = [
        "SESSION CONTEXT:\n"
        f"- Customer: {ctx.customer_name}\n"
        f"- Stakeholder: {ctx.stakeholder_name} ({ctx.stakeholder_role})"
    ]
    if ctx.intel_brief:
        sections.append(f"PRE-MEETING INTELLIGENCE:\n{ctx.intel_brief}")
    if ctx.premeet_artifacts:
        sections.append(f"PRE-MEETING DOCUMENTS RECEIVED:\n{', '.join(ctx.premeet_artifacts)}")
    sections.append(f"CONFIRMED SO FAR:\n{ctx.confirmed_items_summary}")
    sections.append(f"UNRESOLVED ITEMS:\n{ctx.unresolved_items_summary}")
    if ctx.uploaded_files_summary:
        sections.append(f"UPLOADED FILES:\n{ctx.uploaded_files_summary}")
    if ctx.live_system_data:
        sections.append(f"LIVE SYSTEM DATA:\n{ctx.live_system_data}")
    return "\n\n".join(sections)


def compose_instructions(
    session: Session,
    contour_map: ContourMap,
    live_data: LiveSystemData | None = None,
) -> str:
    """Join the identity, session context and section guidance layers."""
    ctx = build_session_context(session, contour_map, live_data)
    layers = [
        IDENTITY_PROMPT,
        render_context_layer(ctx),
        section_prompt(session.current_section, contour_map),
    ]
    return LAYER_SEPARATOR.join(layers)
