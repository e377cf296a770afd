"""Tool dispatcher: routes one model tool call to its effect.

A call produces at most one kind of effect: a contour map mutation, a
display payload, or a state machine action. ``process_file`` and
``lookup_system_data`` are read-only lookups whose result goes back to the
model as the tool reply.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from ..models import ContourMap, StateAction, ToolCall
from .contour_store import apply_tool_call
from .system_clients import SystemClients

logger = logging.getLogger(__name__)

ACK: dict[str, Any] = {"success": True}


class ToolKind(str, Enum):
    UPDATE_CONTOUR = "update_contour"
    SHOW_COMPARISON = "show_comparison"
    SHOW_HIERARCHY = "show_hierarchy"
    SHOW_TABLE = "show_table"
    PARK_ITEM = "park_item"
    ADVANCE_SECTION = "advance_section"
    PROCESS_FILE = "process_file"
    LOOKUP_SYSTEM_DATA = "lookup_system_data"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> ToolKind:
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


class ToolOutcome(BaseModel):
    """Effect of one tool call plus the reply sent back to the model."""
    contour_map: ContourMap
    display: dict[str, Any] | None = None
    state_action: StateAction | None = None
    reply: Any = ACK


class ToolDispatcher:
    """Apply tool calls against a contour map and the system collaborators."""

    def __init__(self, clients: SystemClients | None = None) -> None:
        self.clients = clients

    def dispatch(
        self,
        call: ToolCall,
        contour_map: ContourMap,
        *,
        customer_id: str,
        section: str = "",
        now: datetime | None = None,
    ) -> ToolOutcome:
        kind = ToolKind.from_name(call.name)

        if kind is ToolKind.PROCESS_FILE:
            return ToolOutcome(contour_map=contour_map, reply=self.process_file(call.input, contour_map))
        if kind is ToolKind.LOOKUP_SYSTEM_DATA:
            return ToolOutcome(contour_map=contour_map, reply=self.lookup_system_data(call.input, customer_id))
        if kind is ToolKind.UNKNOWN:
            logger.warning("Ignoring unknown tool call %r", call.name)
            return ToolOutcome(contour_map=contour_map)

        result = apply_tool_call(kind.value, call.input, contour_map, section=section, now=now)
        return ToolOutcome(
            contour_map=result.contour_map,
            display=result.display,
            state_action=result.state_action,
        )

    # ------------------------------------------------------------------
    # Read-only lookups
    # ------------------------------------------------------------------

    def process_file(self, tool_input: dict[str, Any], contour_map: ContourMap) -> dict[str, Any]:
        file_id = str(tool_input.get("file_id") or "")
        for artifact in contour_map.uploaded_artifacts:
            if artifact.id == file_id:
                reply: dict[str, Any] = {
                    "filename": artifact.filename,
                    "type": artifact.type,
                    "extracted_data": artifact.extracted_data,
                }
                focus = tool_input.get("analysis_focus")
                if focus:
                    reply["analysis_focus"] = focus
                return reply
        return {"error": "file not found", "file_id": file_id}

    def lookup_system_data(self, tool_input: dict[str, Any], customer_id: str) -> dict[str, Any]:
        query_type = str(tool_input.get("query_type") or "")
        system_name = str(tool_input.get("system_name") or "").strip().lower()
        dimension = str(tool_input.get("dimension") or "").strip()

        if self.clients is None:
            return {"error": "system data unavailable", "query_type": query_type}

        if query_type == "systems":
            inventory = self.clients.aod.get_asset_inventory(customer_id)
            systems = [s for s in inventory.get("systems") or [] if isinstance(s, dict)]
            if system_name:
                systems = [s for s in systems if system_name in str(s.get("name", "")).lower()]
            return {"systems": systems, "total_count": len(systems)}

        if query_type == "connections":
            topology = self.clients.aam.get_topology(customer_id)
            connections = [c for c in topology.get("connections") or [] if isinstance(c, dict)]
            if system_name:
                connections = [
                    c for c in connections
                    if system_name in str(c.get("source_system", "")).lower()
                    or system_name in str(c.get("target_system", "")).lower()
                ]
            return {"connections": connections, "total_connections": len(connections)}

        if query_type == "dimension_data":
            if not dimension:
                return {"error": "dimension is required for dimension_data"}
            data = self.clients.dcl.get_dimension_data(customer_id, dimension)
            return data if data is not None else {"error": "no data", "dimension": dimension}

        if query_type == "graph_summary":
            summary = self.clients.dcl.get_graph_summary(customer_id)
            return summary if summary is not None else {"error": "no graph found"}

        return {"error": f"unknown query_type: {query_type}"}
