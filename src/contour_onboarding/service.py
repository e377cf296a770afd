"""Application service: session lifecycle, pre-meeting flows, approval and export.

The HTTP API, the WebSocket transport and the CLI all go through
``OnboardingService``. Every write to an existing session happens under
that session's lock.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from .agents.intel_analyst import IntelGatherer
from .agents.model_gateway import AG2ModelGateway, ModelGateway
from .agents.premeet_writer import PremeetDrafter
from .errors import InvalidRequestError, SessionNotFoundError
from .logging_config import TurnCallbacks
from .models import (
    AgentConfig,
    ContourMap,
    ExportResult,
    FileAttachment,
    FollowUpTask,
    IntelBrief,
    MailResult,
    Message,
    PreMeetRequest,
    SectionId,
    SectionStatus,
    Session,
    SessionStatus,
    StateAction,
    TurnResult,
    UploadedArtifact,
    utcnow,
)
from .orchestrator import ConversationOrchestrator
from .tools.contour_store import add_artifact, approve_contour
from .tools.dispatcher import ToolDispatcher
from .tools.file_extractor import BasicFileExtractor, FileExtractor, extract_safely
from .tools.live_data import LiveDataProvider, TTLCache
from .tools.mailer import MailSender, create_mail_sender
from .tools.scraper import NullScraper, PublicSourceScraper
from .tools.session_store import SessionLocks, SessionStore, create_store
from .tools.state_machine import initial_state, reduce_state
from .tools.system_clients import SystemClients

logger = logging.getLogger(__name__)


def decode_attachment(filename: str, mime_type: str, data_b64: str) -> FileAttachment:
    """Build an attachment from a base64 payload. Raises ``InvalidRequestError`` on bad input."""
    if not filename:
        raise InvalidRequestError("filename is required")
    try:
        data = base64.b64decode(data_b64 or "", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError(f"File {filename} is not valid base64") from exc
    return FileAttachment(
        filename=filename,
        mime_type=mime_type or "application/octet-stream",
        size=len(data),
        data=data,
    )


class OnboardingService:
    def __init__(
        self,
        config: AgentConfig,
        *,
        store: SessionStore | None = None,
        gateway: ModelGateway | None = None,
        clients: SystemClients | None = None,
        file_extractor: FileExtractor | None = None,
        scraper: PublicSourceScraper | None = None,
        mailer: MailSender | None = None,
        intel: IntelGatherer | None = None,
        drafter: PremeetDrafter | None = None,
        callbacks: TurnCallbacks | None = None,
    ) -> None:
        self.config = config
        self.store = store or create_store(config)
        self.clients = clients
        self.file_extractor = file_extractor or BasicFileExtractor()
        self.mailer = mailer or create_mail_sender(config.smtp)
        self.intel = intel or IntelGatherer(config, scraper or NullScraper())
        self.drafter = drafter or PremeetDrafter(config)
        self.locks = SessionLocks()

        live_data = None
        if clients is not None:
            live_data = LiveDataProvider(clients, TTLCache(ttl=config.live_data_ttl))
        self.orchestrator = ConversationOrchestrator(
            config,
            self.store,
            gateway or AG2ModelGateway(config),
            dispatcher=ToolDispatcher(clients),
            live_data=live_data,
            file_extractor=self.file_extractor,
            callbacks=callbacks,
            locks=self.locks,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        customer_id: str,
        customer_name: str,
        stakeholder_name: str,
        stakeholder_role: str,
        stakeholder_email: str = "",
        *,
        pre_meeting: bool = False,
    ) -> Session:
        """Create a session with an empty contour map.

        With ``pre_meeting`` the session waits in INTEL_GATHERING until the
        first stakeholder turn; otherwise the interview starts right away.
        """
        missing = [
            name for name, value in (
                ("customer_id", customer_id),
                ("customer_name", customer_name),
                ("stakeholder_name", stakeholder_name),
                ("stakeholder_role", stakeholder_role),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise InvalidRequestError(f"Missing required fields: {', '.join(missing)}")

        state = initial_state()
        if pre_meeting:
            state = state.model_copy(update={"status": SessionStatus.INTEL_GATHERING})
        session = Session(
            customer_id=customer_id.strip(),
            customer_name=customer_name.strip(),
            stakeholder_name=stakeholder_name.strip(),
            stakeholder_role=stakeholder_role.strip(),
            stakeholder_email=(stakeholder_email or "").strip(),
            contour_map=ContourMap.empty(),
        ).with_state(state)
        self.store.save_session(session)
        logger.info("Created session %s for %s", session.id, session.customer_name)
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> list[Session]:
        return self.store.list_sessions()

    def list_messages(self, session_id: str) -> list[Message]:
        self.get_session(session_id)
        return self.store.list_messages(session_id)

    def get_contour(self, session_id: str) -> ContourMap:
        return self.get_session(session_id).contour_map

    def list_followups(self, session_id: str) -> list[FollowUpTask]:
        return self.get_contour(session_id).follow_up_tasks

    # ------------------------------------------------------------------
    # Turns and state
    # ------------------------------------------------------------------

    def send_message(
        self,
        session_id: str,
        content: str,
        files: list[dict[str, Any]] | None = None,
    ) -> TurnResult:
        """Run one stakeholder turn. *files* carry ``filename``, ``mime_type`` and base64 ``data``."""
        attachments = [
            decode_attachment(
                str(f.get("filename") or ""),
                str(f.get("mime_type") or ""),
                str(f.get("data") or ""),
            )
            for f in files or []
        ]
        return self.orchestrator.handle_turn(session_id, content, attachments)

    def apply_state_action(self, session_id: str, action: StateAction) -> Session:
        """Apply an operator action (jump, park, resume, pause, complete, advance)."""
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            state = reduce_state(session.state, action)
            updated = session.with_state(state).model_copy(update={"updated_at": utcnow()})
            self.store.save_session(updated)
        logger.info("Session %s: %s -> section %s (%s)",
                    session_id, action.type.value, state.current_section.value, state.status.value)
        return updated

    # ------------------------------------------------------------------
    # Approval and export
    # ------------------------------------------------------------------

    def approve_contour(self, session_id: str) -> ContourMap:
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            if session.status is not SessionStatus.COMPLETE:
                raise InvalidRequestError("Session must be complete before approval")
            approved = approve_contour(session.contour_map)
            self.store.save_session(session.model_copy(update={
                "contour_map": approved,
                "updated_at": utcnow(),
            }))
        logger.info("Contour map approved for session %s", session_id)
        return approved

    def export_contour(self, session_id: str) -> ExportResult:
        session = self.get_session(session_id)
        if not session.contour_map.is_approved:
            raise InvalidRequestError("Contour map must be approved before export")
        if self.clients is None:
            return ExportResult(success=False, error="Graph service is not configured")
        result = self.clients.dcl.export_contour_map(session.customer_id, session.contour_map)
        if result.success:
            logger.info("Exported session %s to graph %s", session_id, result.graph_id)
        else:
            logger.warning("Export of session %s failed: %s", session_id, result.error)
        return result

    # ------------------------------------------------------------------
    # Pre-meeting (sections 0A and 0B)
    # ------------------------------------------------------------------

    def _mark_section(self, session: Session, section: SectionId) -> dict[SectionId, SectionStatus]:
        statuses = dict(session.section_status)
        statuses[section] = SectionStatus.COMPLETE
        return statuses

    def gather_intel(self, session_id: str) -> IntelBrief:
        session = self.get_session(session_id)
        brief = self.intel.gather(session.customer_name)
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            update: dict[str, Any] = {
                "intel_brief": brief,
                "section_status": self._mark_section(session, SectionId.UNIVERSE_SCAN),
                "updated_at": utcnow(),
            }
            if session.status is SessionStatus.INTEL_GATHERING:
                update["status"] = SessionStatus.READY
            self.store.save_session(session.model_copy(update=update))
        return brief

    def send_premeet(self, session_id: str) -> tuple[PreMeetRequest, MailResult]:
        session = self.get_session(session_id)
        request = self.drafter.draft(session)
        result = self.mailer.send(request)
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            update: dict[str, Any] = {
                "section_status": self._mark_section(session, SectionId.PREMEET_REQUEST),
                "updated_at": utcnow(),
            }
            if session.status in (SessionStatus.INTEL_GATHERING, SessionStatus.READY):
                update["status"] = SessionStatus.PREMEET_SENT
            self.store.save_session(session.model_copy(update=update))
        return request, result

    def upload_premeet_artifact(
        self, session_id: str, filename: str, mime_type: str, data_b64: str
    ) -> UploadedArtifact:
        attachment = decode_attachment(filename, mime_type, data_b64)
        extraction = extract_safely(
            self.file_extractor, attachment.filename, attachment.mime_type, attachment.data or b""
        )
        artifact = UploadedArtifact(
            id=attachment.id,
            filename=attachment.filename,
            type=attachment.mime_type,
            extracted_data=extraction.extracted_data,
            section=SectionId.PREMEET_REQUEST.value,
        )
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            self.store.save_session(session.model_copy(update={
                "contour_map": add_artifact(session.contour_map, artifact),
                "premeet_artifacts_received": [*session.premeet_artifacts_received, filename],
                "updated_at": utcnow(),
            }))
        return artifact
