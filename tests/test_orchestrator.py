"""Tests for the conversation orchestrator turn loop."""

from __future__ import annotations

import json
import threading
import time
from unittest.mock import MagicMock

import pytest
from conftest import FakeGateway, hierarchy_add, tool_call

from contour_onboarding.errors import InvalidRequestError, ModelGatewayError, SessionNotFoundError
from contour_onboarding.models import (
    FileAttachment,
    MessageRole,
    ModelResponse,
    SectionId,
    SectionStatus,
    SessionStatus,
)
from contour_onboarding.orchestrator import NO_RESPONSE_TEXT, ConversationOrchestrator, history_messages
from contour_onboarding.tools.live_data import LiveSystemData


def _orchestrator(config, store, gateway, **kwargs) -> ConversationOrchestrator:
    return ConversationOrchestrator(config, store, gateway, **kwargs)


class TestPlainTurn:
    def test_no_tool_calls_returns_text(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="How is Acme organized?")])
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "Hi there")

        assert result.agent_message == "How is Acme organized?"
        assert result.rich_content == []
        assert result.section is SectionId.BUSINESS_OVERVIEW
        assert result.session_status is SessionStatus.IN_PROGRESS
        assert len(gateway.calls) == 1

    def test_persists_both_turns(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="Welcome")])
        _orchestrator(config, store, gateway).handle_turn(session.id, "Hi there")
        messages = store.list_messages(session.id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.STAKEHOLDER, "Hi there"),
            (MessageRole.AGENT, "Welcome"),
        ]
        assert messages[0].section == "1"

    def test_history_replayed_on_next_turn(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="First"), ModelResponse(text="Second")])
        orchestrator = _orchestrator(config, store, gateway)
        orchestrator.handle_turn(session.id, "one")
        orchestrator.handle_turn(session.id, "two")
        messages = gateway.calls[1]["messages"]
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "one"), ("assistant", "First"), ("user", "two"),
        ]

    def test_empty_text_uses_placeholder(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="")])
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "Hello")
        assert result.agent_message == NO_RESPONSE_TEXT

    def test_instructions_carry_session_context(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="ok")])
        _orchestrator(config, store, gateway).handle_turn(session.id, "Hello")
        assert "- Customer: Acme Corp" in gateway.calls[0]["instructions"]
        assert {t["function"]["name"] for t in gateway.calls[0]["tools"]} >= {"update_contour", "advance_section"}


class TestToolRounds:
    def test_tool_round_updates_map_and_acknowledges(self, config, store, session):
        gateway = FakeGateway([
            ModelResponse(tool_calls=[
                tool_call("update_contour", "call_1", **hierarchy_add("d1", "Commercial Banking")),
                tool_call("show_hierarchy", "call_2", title="Org", root={"name": "Commercial Banking"}),
            ]),
            ModelResponse(text="Does that look right?"),
        ])
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "We have a commercial bank")

        assert result.agent_message == "Does that look right?"
        assert [item["type"] for item in result.rich_content] == ["hierarchy"]
        assert result.contour_completeness == 21

        stored = store.get_session(session.id)
        assert stored.contour_map.organizational_hierarchy[0].id == "d1"

        second = gateway.calls[1]["messages"]
        assistant = second[-3]
        assert assistant["role"] == "assistant"
        assert [c["id"] for c in assistant["tool_calls"]] == ["call_1", "call_2"]
        assert second[-2] == {"role": "tool", "tool_call_id": "call_1", "content": json.dumps({"success": True})}
        assert second[-1]["tool_call_id"] == "call_2"

    def test_state_action_applies_immediately(self, config, store, session):
        gateway = FakeGateway([
            ModelResponse(tool_calls=[
                tool_call("advance_section", summary="done"),
                tool_call("park_item", dimension="Region", question="Who owns it?"),
            ]),
            ModelResponse(text="Now, systems of record."),
        ])
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "move on")

        assert result.section is SectionId.SYSTEM_AUTHORITY
        stored = store.get_session(session.id)
        assert stored.current_section is SectionId.SYSTEM_AUTHORITY
        assert stored.section_status[SectionId.BUSINESS_OVERVIEW] is SectionStatus.COMPLETE
        # The park in the same round sees the post-transition section
        assert stored.contour_map.follow_up_tasks[0].section == "2"
        # The next model call is instructed for the new section
        assert "SECTION 2: SYSTEM AUTHORITY" in gateway.calls[1]["instructions"]
        # The agent turn is tagged with the new section, the stakeholder turn with the old one
        roles = {m.role: m.section for m in store.list_messages(session.id)}
        assert roles == {MessageRole.STAKEHOLDER: "1", MessageRole.AGENT: "2"}

    def test_round_limit_terminates(self, config, store, session):
        config.max_tool_rounds = 3
        gateway = FakeGateway(lambda index: ModelResponse(
            text=f"round {index}",
            tool_calls=[tool_call("park_item", dimension="Loop", question=f"q{index}")],
        ))
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "go")

        assert len(gateway.calls) == config.max_tool_rounds + 1
        assert result.agent_message == "round 3"
        # The tool calls of the final response are not processed
        assert len(store.get_session(session.id).contour_map.follow_up_tasks) == 3

    def test_round_limit_keeps_last_text(self, config, store, session):
        config.max_tool_rounds = 2
        responses = [
            ModelResponse(text="Let me record that.", tool_calls=[tool_call("show_table", title="t")]),
            ModelResponse(tool_calls=[tool_call("show_table", title="t")]),
            ModelResponse(tool_calls=[tool_call("show_table", title="t")]),
        ]
        result = _orchestrator(config, store, FakeGateway(responses)).handle_turn(session.id, "go")
        assert result.agent_message == "Let me record that."
        assert len(result.rich_content) == 2

    def test_unknown_tool_does_not_fail_turn(self, config, store, session):
        gateway = FakeGateway([
            ModelResponse(tool_calls=[tool_call("summon_dragon", size="large")]),
            ModelResponse(text="Sorry about that."),
        ])
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "hello")
        assert result.agent_message == "Sorry about that."


class TestFailures:
    def test_gateway_failure_persists_nothing(self, config, store, session):
        gateway = FakeGateway([
            ModelResponse(tool_calls=[tool_call("update_contour", **hierarchy_add("d1", "Commercial"))]),
            RuntimeError("backend down"),
        ])
        with pytest.raises(ModelGatewayError):
            _orchestrator(config, store, gateway).handle_turn(session.id, "hello")
        assert store.get_session(session.id) == session
        assert store.list_messages(session.id) == []

    def test_gateway_error_passes_through(self, config, store, session):
        gateway = FakeGateway([ModelGatewayError("quota")])
        with pytest.raises(ModelGatewayError, match="quota"):
            _orchestrator(config, store, gateway).handle_turn(session.id, "hello")

    def test_unknown_session(self, config, store):
        with pytest.raises(SessionNotFoundError):
            _orchestrator(config, store, FakeGateway()).handle_turn("missing", "hello")

    def test_empty_content_rejected(self, config, store, session):
        gateway = FakeGateway()
        with pytest.raises(InvalidRequestError):
            _orchestrator(config, store, gateway).handle_turn(session.id, "   ")
        assert gateway.calls == []

    def test_complete_session_rejected(self, config, store, session):
        store.save_session(session.model_copy(update={"status": SessionStatus.COMPLETE}))
        with pytest.raises(InvalidRequestError):
            _orchestrator(config, store, FakeGateway()).handle_turn(session.id, "hello")


class TestStatusAndAttachments:
    @pytest.mark.parametrize("status", [SessionStatus.PAUSED, SessionStatus.READY, SessionStatus.PREMEET_SENT])
    def test_turn_resumes_interview(self, config, store, session, status):
        store.save_session(session.model_copy(update={"status": status}))
        result = _orchestrator(config, store, FakeGateway([ModelResponse(text="Welcome back")])).handle_turn(
            session.id, "I'm back",
        )
        assert result.session_status is SessionStatus.IN_PROGRESS
        assert store.get_session(session.id).status is SessionStatus.IN_PROGRESS

    def test_attachment_is_ingested(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="Thanks for the file")])
        attachment = FileAttachment(
            id="f1", filename="cc.csv", mime_type="text/csv", data=b"Cost Center,Owner\n100,Finance\n",
        )
        _orchestrator(config, store, gateway).handle_turn(session.id, "Here you go", [attachment])

        model_text = gateway.calls[0]["messages"][-1]["content"]
        assert model_text.startswith("Here you go\n\n[Uploaded file: cc.csv (text/csv), file_id=f1]")
        assert "Cost Center" in model_text

        stored = store.get_session(session.id)
        assert stored.contour_map.uploaded_artifacts[0].id == "f1"
        assert stored.contour_map.uploaded_artifacts[0].extracted_data["row_count"] == 1

        stakeholder = store.list_messages(session.id)[0]
        assert stakeholder.content == "Here you go"
        assert stakeholder.files[0].filename == "cc.csv"
        assert stakeholder.files[0].size == len(attachment.data)

    def test_attachment_without_text_is_accepted(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="Got it")])
        attachment = FileAttachment(filename="notes.txt", mime_type="text/plain", data=b"Org notes")
        result = _orchestrator(config, store, gateway).handle_turn(session.id, "", [attachment])
        assert result.agent_message == "Got it"

    def test_extractor_failure_does_not_fail_turn(self, config, store, session):
        class ExplodingExtractor:
            def extract(self, filename, mime_type, data):
                raise RuntimeError("pdf parser crashed")

        gateway = FakeGateway([ModelResponse(text="I could not open that one")])
        attachment = FileAttachment(id="f9", filename="org.pdf", mime_type="application/pdf", data=b"%PDF")
        result = _orchestrator(config, store, gateway, file_extractor=ExplodingExtractor()).handle_turn(
            session.id, "Org chart attached", [attachment],
        )

        assert result.agent_message == "I could not open that one"
        model_text = gateway.calls[0]["messages"][-1]["content"]
        assert model_text.startswith("Org chart attached\n\n[Uploaded file: org.pdf")
        assert model_text.endswith("Could not read org.pdf")
        stored = store.get_session(session.id)
        assert stored.contour_map.uploaded_artifacts[0].extracted_data == {}

    def test_transcript_recorded_on_map(self, config, store, session):
        gateway = FakeGateway([ModelResponse(text="Welcome"), ModelResponse(text="Noted")])
        orchestrator = _orchestrator(config, store, gateway)
        orchestrator.handle_turn(session.id, "Hi there")
        orchestrator.handle_turn(session.id, "We have two divisions")

        transcript = store.get_session(session.id).contour_map.raw_transcript
        assert [(t.role, t.content) for t in transcript] == [
            ("STAKEHOLDER", "Hi there"),
            ("AGENT", "Welcome"),
            ("STAKEHOLDER", "We have two divisions"),
            ("AGENT", "Noted"),
        ]
        assert transcript[0].section == "1"

    def test_live_data_in_instructions(self, config, store, session):
        config.live_data_enabled = True
        live = MagicMock()
        live.fetch.return_value = LiveSystemData(asset_inventory={"systems": [{"name": "SAP", "type": "ERP"}]})
        gateway = FakeGateway([ModelResponse(text="ok")])
        _orchestrator(config, store, gateway, live_data=live).handle_turn(session.id, "hello")
        assert "LIVE SYSTEM DATA:" in gateway.calls[0]["instructions"]
        live.fetch.assert_called_once_with("acme")

    def test_live_data_failure_is_absorbed(self, config, store, session):
        config.live_data_enabled = True
        live = MagicMock()
        live.fetch.side_effect = RuntimeError("collaborators down")
        gateway = FakeGateway([ModelResponse(text="ok")])
        result = _orchestrator(config, store, gateway, live_data=live).handle_turn(session.id, "hello")
        assert result.agent_message == "ok"
        assert "LIVE SYSTEM DATA" not in gateway.calls[0]["instructions"]

class BlockingGateway:
    """Holds the first model call open until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.events: list[str] = []
        self.calls: list[list[dict]] = []
        self._guard = threading.Lock()

    def complete(self, instructions, messages, tools) -> ModelResponse:
        with self._guard:
            index = len(self.calls)
            self.calls.append([dict(m) for m in messages])
        content = messages[-1]["content"]
        self.events.append(f"start:{content}")
        if index == 0:
            self.entered.set()
            self.release.wait(timeout=5)
        self.events.append(f"end:{content}")
        return ModelResponse(text=f"reply to {content}")


class TestConcurrentTurns:
    def test_turns_on_one_session_do_not_interleave(self, config, store, session):
        gateway = BlockingGateway()
        orchestrator = _orchestrator(config, store, gateway)
        errors: list[Exception] = []

        def run(content: str) -> None:
            try:
                orchestrator.handle_turn(session.id, content)
            except Exception as exc:
                errors.append(exc)

        first = threading.Thread(target=run, args=("one",))
        first.start()
        assert gateway.entered.wait(timeout=5)
        second = threading.Thread(target=run, args=("two",))
        second.start()
        time.sleep(0.05)
        assert len(gateway.calls) == 1
        gateway.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert errors == []
        assert gateway.events == ["start:one", "end:one", "start:two", "end:two"]
        assert [(m["role"], m["content"]) for m in gateway.calls[1]] == [
            ("user", "one"), ("assistant", "reply to one"), ("user", "two"),
        ]
        assert [(m.role, m.content) for m in store.list_messages(session.id)] == [
            (MessageRole.STAKEHOLDER, "one"),
            (MessageRole.AGENT, "reply to one"),
            (MessageRole.STAKEHOLDER, "two"),
            (MessageRole.AGENT, "reply to two"),
        ]



class TestHistoryMessages:
    def test_system_messages_skipped(self, session):
        from contour_onboarding.models import Message

        messages = [
            Message(session_id=session.id, role=MessageRole.SYSTEM, content="note"),
            Message(session_id=session.id, role=MessageRole.STAKEHOLDER, content="hi"),
            Message(session_id=session.id, role=MessageRole.AGENT, content="hello"),
        ]
        assert history_messages(messages) == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]
