"""Tests for the tool dispatcher."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import hierarchy_add, tool_call

from contour_onboarding.models import StateActionType, UploadedArtifact
from contour_onboarding.tools.contour_store import add_artifact
from contour_onboarding.tools.dispatcher import ACK, ToolDispatcher, ToolKind


@pytest.fixture
def clients() -> MagicMock:
    clients = MagicMock()
    clients.aod.get_asset_inventory.return_value = {
        "systems": [
            {"name": "SAP S/4HANA", "type": "ERP"},
            {"name": "Workday", "type": "HCM"},
        ],
    }
    clients.aam.get_topology.return_value = {
        "connections": [
            {"source_system": "Workday", "target_system": "SAP S/4HANA"},
            {"source_system": "Salesforce", "target_system": "NetSuite"},
        ],
    }
    clients.dcl.get_graph_summary.return_value = {"nodes": 120, "edges": 300}
    clients.dcl.get_dimension_data.return_value = {"dimension": "cost_center", "values": ["100", "200"]}
    return clients


class TestToolKind:
    def test_known_and_unknown_names(self):
        assert ToolKind.from_name("update_contour") is ToolKind.UPDATE_CONTOUR
        assert ToolKind.from_name("lookup_system_data") is ToolKind.LOOKUP_SYSTEM_DATA
        assert ToolKind.from_name("make_coffee") is ToolKind.UNKNOWN


class TestDispatch:
    def test_mutation_outcome(self, empty_map):
        outcome = ToolDispatcher().dispatch(
            tool_call("update_contour", **hierarchy_add("d1", "Commercial")), empty_map, customer_id="acme",
        )
        assert outcome.contour_map.organizational_hierarchy[0].id == "d1"
        assert outcome.display is None
        assert outcome.state_action is None
        assert outcome.reply == ACK

    def test_display_outcome(self, empty_map):
        outcome = ToolDispatcher().dispatch(
            tool_call("show_table", title="T", headers=["a"], rows=[["1"]]), empty_map, customer_id="acme",
        )
        assert outcome.contour_map is empty_map
        assert outcome.display["type"] == "table"
        assert outcome.state_action is None

    def test_state_outcome(self, empty_map):
        outcome = ToolDispatcher().dispatch(
            tool_call("advance_section", summary="done"), empty_map, customer_id="acme",
        )
        assert outcome.state_action.type is StateActionType.ADVANCE
        assert outcome.display is None

    def test_park_item_records_section(self, empty_map):
        outcome = ToolDispatcher().dispatch(
            tool_call("park_item", dimension="Region", question="Who owns it?"),
            empty_map, customer_id="acme", section="3",
        )
        assert outcome.contour_map.follow_up_tasks[0].section == "3"

    def test_unknown_tool_acknowledged(self, empty_map):
        outcome = ToolDispatcher().dispatch(tool_call("make_coffee"), empty_map, customer_id="acme")
        assert outcome.contour_map is empty_map
        assert outcome.reply == ACK


class TestProcessFile:
    def test_returns_extracted_data(self, empty_map):
        artifact = UploadedArtifact(
            id="f1", filename="cc.csv", type="text/csv", extracted_data={"headers": ["Cost Center"]},
        )
        contour_map = add_artifact(empty_map, artifact)
        outcome = ToolDispatcher().dispatch(
            tool_call("process_file", file_id="f1", analysis_focus="cost centers"), contour_map, customer_id="acme",
        )
        assert outcome.contour_map is contour_map
        assert outcome.reply == {
            "filename": "cc.csv",
            "type": "text/csv",
            "extracted_data": {"headers": ["Cost Center"]},
            "analysis_focus": "cost centers",
        }

    def test_missing_file(self, empty_map):
        reply = ToolDispatcher().process_file({"file_id": "nope"}, empty_map)
        assert reply == {"error": "file not found", "file_id": "nope"}


class TestLookupSystemData:
    def test_without_clients(self):
        reply = ToolDispatcher().lookup_system_data({"query_type": "systems"}, "acme")
        assert reply["error"] == "system data unavailable"

    def test_systems_filtered_by_name(self, clients):
        reply = ToolDispatcher(clients).lookup_system_data({"query_type": "systems", "system_name": "sap"}, "acme")
        assert reply["total_count"] == 1
        assert reply["systems"][0]["name"] == "SAP S/4HANA"
        clients.aod.get_asset_inventory.assert_called_once_with("acme")

    def test_connections_match_either_end(self, clients):
        reply = ToolDispatcher(clients).lookup_system_data(
            {"query_type": "connections", "system_name": "workday"}, "acme",
        )
        assert reply["total_connections"] == 1

    def test_dimension_data(self, clients):
        reply = ToolDispatcher(clients).lookup_system_data(
            {"query_type": "dimension_data", "dimension": "cost_center"}, "acme",
        )
        assert reply["values"] == ["100", "200"]
        clients.dcl.get_dimension_data.assert_called_once_with("acme", "cost_center")

    def test_dimension_data_requires_dimension(self, clients):
        reply = ToolDispatcher(clients).lookup_system_data({"query_type": "dimension_data"}, "acme")
        assert "error" in reply
        clients.dcl.get_dimension_data.assert_not_called()

    def test_graph_summary_missing(self, clients):
        clients.dcl.get_graph_summary.return_value = None
        reply = ToolDispatcher(clients).lookup_system_data({"query_type": "graph_summary"}, "acme")
        assert reply == {"error": "no graph found"}

    def test_unknown_query_type(self, clients):
        reply = ToolDispatcher(clients).lookup_system_data({"query_type": "weather"}, "acme")
        assert reply == {"error": "unknown query_type: weather"}

    def test_lookup_never_touches_map(self, clients, sample_map):
        outcome = ToolDispatcher(clients).dispatch(
            tool_call("lookup_system_data", query_type="graph_summary"), sample_map, customer_id="acme",
        )
        assert outcome.contour_map is sample_map
        assert outcome.reply == {"nodes": 120, "edges": 300}
