"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from contour_onboarding.models import (
    AgentConfig,
    ContourMap,
    ModelResponse,
    Session,
    ToolCall,
)
from contour_onboarding.service import OnboardingService
from contour_onboarding.tools.contour_store import apply_tool_call
from contour_onboarding.tools.session_store import InMemorySessionStore
from contour_onboarding.tools.state_machine import initial_state

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"


class FakeGateway:
    """Scripted model gateway.

    *responses* is either a list consumed one per call (an ``Exception`` entry
    is raised instead of returned) or a callable receiving the call index.
    """

    def __init__(self, responses: list[Any] | Callable[[int], ModelResponse] | None = None) -> None:
        self.responses = responses if callable(responses) else list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def complete(self, instructions, messages, tools) -> ModelResponse:
        index = len(self.calls)
        self.calls.append({
            "instructions": instructions,
            "messages": [dict(m) for m in messages],
            "tools": tools,
        })
        if callable(self.responses):
            return self.responses(index)
        if not self.responses:
            return ModelResponse(text="")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def tool_call(name: str, call_id: str | None = None, **tool_input: Any) -> ToolCall:
    if call_id:
        return ToolCall(id=call_id, name=name, input=tool_input)
    return ToolCall(name=name, input=tool_input)


def hierarchy_add(node_id: str, name: str, parent_id: str | None = None, **extra: Any) -> dict[str, Any]:
    return {
        "dimension_type": "organizational_hierarchy",
        "operation": "add",
        "node_data": {"id": node_id, "name": name, "parent_id": parent_id, **extra},
    }


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(
        azure={"api_key": "k", "api_version": "2024-06-01", "endpoint": "https://test.openai.azure.com"},
        store_backend="memory",
        live_data_enabled=False,
    )


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def empty_map() -> ContourMap:
    return ContourMap.empty()


@pytest.fixture
def sample_map() -> ContourMap:
    """A small map with a two-level hierarchy, one SOR entry and one open conflict."""
    contour_map = ContourMap.empty()
    calls = [
        ("update_contour", hierarchy_add("d1", "Commercial Banking")),
        ("update_contour", hierarchy_add("d2", "Corporate Lending", "d1")),
        ("update_contour", hierarchy_add("d3", "Retail Banking")),
        ("update_contour", {
            "dimension_type": "sor_authority_map",
            "operation": "update",
            "node_data": {"dimension": "Cost Center", "system": "SAP"},
        }),
        ("update_contour", {
            "dimension_type": "conflict_register",
            "operation": "add",
            "node_data": {
                "id": "c1",
                "dimension": "Region",
                "systems": [{"system": "SAP", "value": "EMEA"}, {"system": "Workday", "value": "Europe"}],
            },
        }),
    ]
    for name, tool_input in calls:
        contour_map = apply_tool_call(name, tool_input, contour_map).contour_map
    return contour_map


@pytest.fixture
def session(store) -> Session:
    created = Session(
        customer_id="acme",
        customer_name="Acme Corp",
        stakeholder_name="Dana",
        stakeholder_role="Controller",
    ).with_state(initial_state())
    store.save_session(created)
    return created


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway([ModelResponse(text="How is the company organized?")])


@pytest.fixture
def service(config, store, gateway) -> OnboardingService:
    return OnboardingService(config, store=store, gateway=gateway)
