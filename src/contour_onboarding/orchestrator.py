"""Conversation orchestrator: runs one stakeholder turn end to end.

Per turn:
1. Load the session and its message history under the session lock.
2. Ingest attachments into a working copy of the contour map.
3. Ask the model, then loop: dispatch every tool call, apply state actions
   immediately, send the tool results back. Stop when the model answers
   without tool calls or the round limit is hit.
4. Commit the stakeholder message, the agent message and the session.

Nothing is written until the loop completes, so a gateway failure leaves
the stored session exactly as it was.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from .agents.context_builder import compose_instructions
from .agents.model_gateway import (
    ModelGateway,
    assistant_message,
    tool_result_message,
    user_message,
)
from .agents.tool_catalog import to_openai_tools
from .errors import InvalidRequestError, ModelGatewayError, SessionNotFoundError
from .logging_config import NullCallbacks, TurnCallbacks
from .models import (
    AgentConfig,
    ContourMap,
    ConversationState,
    FileAttachment,
    Message,
    MessageRole,
    ModelResponse,
    Session,
    SessionStatus,
    TranscriptEntry,
    TurnResult,
    UploadedArtifact,
    utcnow,
)
from .tools.contour_store import add_artifact, completeness_score
from .tools.dispatcher import ToolDispatcher
from .tools.file_extractor import BasicFileExtractor, FileExtractor, extract_safely
from .tools.live_data import LiveDataProvider, LiveSystemData
from .tools.session_store import SessionLocks, SessionStore
from .tools.state_machine import reduce_state

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "(No response text)"

# A stakeholder turn on a session in one of these states starts or resumes the interview.
RESUMABLE_STATUSES = (
    SessionStatus.PAUSED,
    SessionStatus.INTEL_GATHERING,
    SessionStatus.PREMEET_SENT,
    SessionStatus.READY,
)


def history_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Stored turns as model messages. System notes are not replayed."""
    history = []
    for message in messages:
        if message.role is MessageRole.STAKEHOLDER:
            history.append(user_message(message.content))
        elif message.role is MessageRole.AGENT:
            history.append(assistant_message(message.content))
    return history


class ConversationOrchestrator:
    """Process stakeholder turns against the model and the contour map."""

    def __init__(
        self,
        config: AgentConfig,
        store: SessionStore,
        gateway: ModelGateway,
        *,
        dispatcher: ToolDispatcher | None = None,
        live_data: LiveDataProvider | None = None,
        file_extractor: FileExtractor | None = None,
        callbacks: TurnCallbacks | None = None,
        locks: SessionLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher or ToolDispatcher()
        self.live_data = live_data
        self.file_extractor = file_extractor or BasicFileExtractor()
        self.callbacks: TurnCallbacks = callbacks or NullCallbacks()
        self.locks = locks or SessionLocks()
        self.clock = clock
        self.tools = to_openai_tools()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ingest(
        self,
        attachments: list[FileAttachment],
        contour_map: ContourMap,
        section: str,
    ) -> tuple[ContourMap, list[FileAttachment], str]:
        """Extract attachments into the map. Returns the map, file records and model-facing notes."""
        records: list[FileAttachment] = []
        notes: list[str] = []
        for attachment in attachments:
            extraction = extract_safely(
                self.file_extractor, attachment.filename, attachment.mime_type, attachment.data or b""
            )
            artifact = UploadedArtifact(
                id=attachment.id,
                filename=attachment.filename,
                type=attachment.mime_type,
                extracted_data=extraction.extracted_data,
                section=section,
                uploaded_at=self.clock(),
            )
            contour_map = add_artifact(contour_map, artifact, now=self.clock())
            records.append(attachment.model_copy(update={
                "size": attachment.size or len(attachment.data or b""),
                "extracted_data": extraction.extracted_data,
            }))
            notes.append(
                f"[Uploaded file: {attachment.filename} ({attachment.mime_type}), "
                f"file_id={attachment.id}]\n{extraction.summary}"
            )
        return contour_map, records, "\n\n".join(notes)

    def _fetch_live(self, customer_id: str) -> LiveSystemData | None:
        if self.live_data is None or not self.config.live_data_enabled:
            return None
        try:
            return self.live_data.fetch(customer_id)
        except Exception as exc:
            logger.warning("Live system data unavailable for %s: %s", customer_id, exc)
            self.callbacks.on_warning(f"Live system data unavailable: {exc}")
            return None

    def _ask(
        self,
        session: Session,
        state: ConversationState,
        contour_map: ContourMap,
        live: LiveSystemData | None,
        messages: list[dict[str, Any]],
    ) -> ModelResponse:
        view = session.with_state(state).model_copy(update={"contour_map": contour_map})
        instructions = compose_instructions(view, contour_map, live)
        try:
            return self.gateway.complete(instructions, list(messages), self.tools)
        except ModelGatewayError:
            raise
        except Exception as exc:
            raise ModelGatewayError(f"Model call failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def handle_turn(
        self,
        session_id: str,
        content: str,
        attachments: list[FileAttachment] | None = None,
    ) -> TurnResult:
        """Process one stakeholder message and return the agent's reply."""
        attachments = list(attachments or [])
        if not (content or "").strip() and not attachments:
            raise InvalidRequestError("content is required")

        with self.locks.hold(session_id):
            session = self.store.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.status is SessionStatus.COMPLETE:
                raise InvalidRequestError("Session is already complete")

            state = session.state
            if state.status in RESUMABLE_STATUSES:
                state = state.model_copy(update={"status": SessionStatus.IN_PROGRESS})
            turn_section = state.current_section
            self.callbacks.on_turn_start(session_id, turn_section.value)

            contour_map, file_records, file_notes = self._ingest(
                attachments, session.contour_map, turn_section.value
            )
            model_text = f"{content}\n\n{file_notes}" if file_notes else content

            messages = history_messages(self.store.list_messages(session_id))
            messages.append(user_message(model_text))
            live = self._fetch_live(session.customer_id)

            response = self._ask(session, state, contour_map, live, messages)
            last_text = response.text
            rich_content: list[dict[str, Any]] = []
            max_rounds = self.config.max_tool_rounds
            rounds = 0

            while response.tool_calls and rounds < max_rounds:
                rounds += 1
                self.callbacks.on_model_round(rounds, max_rounds)
                results = []
                for call in response.tool_calls:
                    self.callbacks.on_tool_call(call.name, call.input)
                    outcome = self.dispatcher.dispatch(
                        call,
                        contour_map,
                        customer_id=session.customer_id,
                        section=state.current_section.value,
                        now=self.clock(),
                    )
                    contour_map = outcome.contour_map
                    if outcome.display is not None:
                        rich_content.append(outcome.display)
                    if outcome.state_action is not None:
                        before = state
                        state = reduce_state(state, outcome.state_action)
                        self.callbacks.on_state_change(
                            before.current_section.value,
                            state.current_section.value,
                            state.status.value,
                        )
                    results.append(tool_result_message(call.id, outcome.reply))

                messages.append(assistant_message(response.text, response.tool_calls))
                messages.extend(results)
                response = self._ask(session, state, contour_map, live, messages)
                if response.text:
                    last_text = response.text

            if response.tool_calls:
                logger.warning(
                    "Session %s hit the %d round tool limit, %d tool calls left unprocessed",
                    session_id, max_rounds, len(response.tool_calls),
                )
                self.callbacks.on_warning(f"Tool round limit ({max_rounds}) reached")

            agent_text = response.text or last_text or NO_RESPONSE_TEXT
            now = self.clock()
            stakeholder_msg = Message(
                session_id=session_id,
                role=MessageRole.STAKEHOLDER,
                content=content,
                files=file_records,
                section=turn_section.value,
                timestamp=now,
            )
            agent_msg = Message(
                session_id=session_id,
                role=MessageRole.AGENT,
                content=agent_text,
                rich_content=rich_content,
                section=state.current_section.value,
                timestamp=now,
            )
            transcript = [
                TranscriptEntry(role=m.role.value, content=m.content, section=m.section, timestamp=now)
                for m in (stakeholder_msg, agent_msg)
            ]
            contour_map = contour_map.model_copy(
                update={"raw_transcript": [*contour_map.raw_transcript, *transcript]}
            )
            updated = session.with_state(state).model_copy(update={
                "contour_map": contour_map,
                "updated_at": now,
            })
            self.store.commit(updated, [stakeholder_msg, agent_msg])

        completeness = completeness_score(contour_map)
        self.callbacks.on_turn_end(session_id, completeness)
        return TurnResult(
            agent_message=agent_text,
            rich_content=rich_content,
            section=state.current_section,
            session_status=state.status,
            contour_completeness=completeness,
        )
