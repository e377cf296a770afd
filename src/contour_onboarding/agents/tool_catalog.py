"""Tool schemas offered to the interviewer model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..models import ContourOperation, DimensionType, Provenance

LOOKUP_QUERY_TYPES = ["systems", "connections", "dimension_data", "graph_summary"]


class ToolSpec(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict, description="JSON schema of the input")

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _object(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


TOOL_SPECS: list[ToolSpec] = [
    ToolSpec(
        name="update_contour",
        description=(
            "Add, update or remove an entry in the contour map. Call this whenever "
            "the stakeholder confirms organizational data."
        ),
        parameters=_object(
            {
                "dimension_type": {
                    "type": "string",
                    "enum": [d.value for d in DimensionType],
                    "description": "Which part of the contour map to update",
                },
                "operation": {
                    "type": "string",
                    "enum": [o.value for o in ContourOperation],
                    "description": "What to do with the entry",
                },
                "node_data": {
                    "type": "object",
                    "description": (
                        "Entry data; shape depends on dimension_type. Hierarchy nodes take "
                        "id, name, type, level, parent_id, source_system, source_field, notes."
                    ),
                },
                "confidence": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "Confidence score (0-1)",
                },
                "provenance": {
                    "type": "string",
                    "enum": [p.value for p in Provenance],
                    "description": "How this fact was obtained",
                },
            },
            ["dimension_type", "operation", "node_data"],
        ),
    ),
    ToolSpec(
        name="show_comparison",
        description=(
            "Show values from different systems side by side for one dimension. "
            "Use it when there is a conflict to resolve."
        ),
        parameters=_object(
            {
                "dimension": {"type": "string", "description": "Dimension being compared, e.g. 'Cost Centers'"},
                "systems": {
                    "type": "array",
                    "items": _object(
                        {"system": {"type": "string"}, "value": {"type": "string"}},
                        ["system", "value"],
                    ),
                    "description": "The system values to compare",
                },
            },
            ["dimension", "systems"],
        ),
    ),
    ToolSpec(
        name="show_hierarchy",
        description="Show an organizational tree to present or confirm a structure.",
        parameters=_object(
            {
                "title": {"type": "string", "description": "Title of the tree"},
                "root": {
                    "type": "object",
                    "description": "Root node with a name and a children array of nodes of the same shape.",
                },
            },
            ["title", "root"],
        ),
    ),
    ToolSpec(
        name="show_table",
        description="Show a table, e.g. system-of-record mappings or priority queries.",
        parameters=_object(
            {
                "title": {"type": "string", "description": "Title of the table"},
                "headers": {"type": "array", "items": {"type": "string"}, "description": "Column headers"},
                "rows": {
                    "type": "array",
                    "items": {"type": "array", "items": {"type": "string"}},
                    "description": "Table rows",
                },
            },
            ["title", "headers", "rows"],
        ),
    ),
    ToolSpec(
        name="park_item",
        description=(
            "Park an unresolved topic to revisit later, e.g. when the stakeholder "
            "needs to check with someone else."
        ),
        parameters=_object(
            {
                "dimension": {"type": "string", "description": "Dimension or topic being parked"},
                "question": {"type": "string", "description": "The unresolved question"},
                "suggested_person": {"type": "string", "description": "Who might be able to answer"},
            },
            ["dimension", "question"],
        ),
    ),
    ToolSpec(
        name="advance_section",
        description="Complete the current section and move to the next one once its exit conditions are met.",
        parameters=_object(
            {"summary": {"type": "string", "description": "Short summary of what the section captured"}},
            ["summary"],
        ),
    ),
    ToolSpec(
        name="process_file",
        description="Read the extracted contents of a file the stakeholder uploaded.",
        parameters=_object(
            {
                "file_id": {"type": "string", "description": "Id of the uploaded file"},
                "analysis_focus": {
                    "type": "string",
                    "description": "Optional focus, e.g. 'organizational hierarchy' or 'cost centers'",
                },
            },
            ["file_id"],
        ),
    ),
    ToolSpec(
        name="lookup_system_data",
        description=(
            "Query discovered system data: the asset inventory, system connections, "
            "dimension data or the existing graph summary. Use it to cross-check what "
            "the stakeholder says."
        ),
        parameters=_object(
            {
                "query_type": {
                    "type": "string",
                    "enum": LOOKUP_QUERY_TYPES,
                    "description": "Kind of data to look up",
                },
                "system_name": {"type": "string", "description": "Optional system name filter"},
                "dimension": {"type": "string", "description": "Dimension name for dimension_data"},
            },
            ["query_type"],
        ),
    ),
]


def to_openai_tools(specs: list[ToolSpec] | None = None) -> list[dict[str, Any]]:
    """Adapt tool specs to the function-calling ``tools`` format."""
    return [spec.to_openai() for spec in (specs if specs is not None else TOOL_SPECS)]


def tool_names() -> list[str]:
    return [spec.name for spec in TOOL_SPECS]
