"""Pydantic models for the contour onboarding agent."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SessionStatus(str, Enum):
    INTEL_GATHERING = "INTEL_GATHERING"
    PREMEET_SENT = "PREMEET_SENT"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETE = "COMPLETE"


class SectionId(str, Enum):
    UNIVERSE_SCAN = "0A"
    PREMEET_REQUEST = "0B"
    BUSINESS_OVERVIEW = "1"
    SYSTEM_AUTHORITY = "2"
    DIMENSIONAL_WALKTHROUGH = "3"
    MANAGEMENT_REPORTING = "4"
    PAIN_POINTS = "5"


class SectionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    PARKED = "PARKED"


class HierarchyNodeType(str, Enum):
    LEGAL_ENTITY = "LEGAL_ENTITY"
    DIVISION = "DIVISION"
    DEPARTMENT = "DEPARTMENT"
    COST_CENTER = "COST_CENTER"
    PROFIT_CENTER = "PROFIT_CENTER"
    REGION = "REGION"
    SEGMENT = "SEGMENT"


class Provenance(str, Enum):
    PUBLIC_FILING = "PUBLIC_FILING"
    SYSTEM_EXTRACTED = "SYSTEM_EXTRACTED"
    STAKEHOLDER_CONFIRMED = "STAKEHOLDER_CONFIRMED"
    STAKEHOLDER_FILE = "STAKEHOLDER_FILE"
    INFERRED = "INFERRED"
    UNVERIFIED = "UNVERIFIED"


class ConflictStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    PARKED = "PARKED"


class TaskStatus(str, Enum):
    OPEN = "OPEN"
    COMPLETE = "COMPLETE"


class MessageRole(str, Enum):
    AGENT = "AGENT"
    STAKEHOLDER = "STAKEHOLDER"
    SYSTEM = "SYSTEM"


class DimensionType(str, Enum):
    ORGANIZATIONAL_HIERARCHY = "organizational_hierarchy"
    SOR_AUTHORITY_MAP = "sor_authority_map"
    CONFLICT_REGISTER = "conflict_register"
    MANAGEMENT_OVERLAY = "management_overlay"
    VOCABULARY_MAP = "vocabulary_map"
    PRIORITY_QUERIES = "priority_queries"


class ContourOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class StateActionType(str, Enum):
    ADVANCE = "ADVANCE"
    JUMP = "JUMP"
    PARK = "PARK"
    RESUME = "RESUME"
    PAUSE = "PAUSE"
    COMPLETE = "COMPLETE"


# ---------------------------------------------------------------------------
# Contour map
# ---------------------------------------------------------------------------

class HierarchyNode(BaseModel):
    """One node of an organizational or management hierarchy forest."""
    id: str = Field(default_factory=new_id)
    name: str = Field(default="")
    type: HierarchyNodeType = Field(default=HierarchyNodeType.DIVISION)
    level: int = Field(default=0)
    parent_id: str | None = Field(default=None)
    children: list[HierarchyNode] = Field(default_factory=list)
    source_system: str = Field(default="stakeholder")
    source_field: str = Field(default="")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    provenance: Provenance = Field(default=Provenance.STAKEHOLDER_CONFIRMED)
    notes: str = Field(default="")


class SOREntry(BaseModel):
    """System-of-record authority for one organizational dimension."""
    dimension: str = Field(default="")
    system: str = Field(default="")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    confirmed_by: str | None = Field(default=None)
    conflicts: list[str] = Field(default_factory=list, description="Systems known to disagree")
    notes: str = Field(default="")


class ConflictValue(BaseModel):
    system: str = Field(default="")
    value: str = Field(default="")


class Conflict(BaseModel):
    """A per-dimension disagreement between systems."""
    id: str = Field(default_factory=new_id)
    dimension: str = Field(default="")
    systems: list[ConflictValue] = Field(default_factory=list)
    resolution: str | None = Field(default=None)
    resolved_by: str | None = Field(default=None)
    status: ConflictStatus = Field(default=ConflictStatus.OPEN)


class VocabularyEntry(BaseModel):
    term: str = Field(default="")
    meaning: str = Field(default="")
    context: str = Field(default="")
    system_equivalent: str | None = Field(default=None)


class PriorityQuery(BaseModel):
    """A reporting need the stakeholder flagged as painful."""
    id: str = Field(default_factory=new_id)
    question: str = Field(default="")
    business_context: str = Field(default="")
    frequency: str = Field(default="")
    current_pain: str = Field(default="")
    priority: int = Field(default=0, description="Rank, 1 = most important")


class FollowUpTask(BaseModel):
    id: str = Field(default_factory=new_id)
    description: str = Field(...)
    assigned_to: str | None = Field(default=None)
    section: str = Field(default="")
    status: TaskStatus = Field(default=TaskStatus.OPEN)
    created_at: datetime = Field(default_factory=utcnow)


class TranscriptEntry(BaseModel):
    role: str
    content: str
    section: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class UploadedArtifact(BaseModel):
    """Metadata and extracted data for an ingested file."""
    id: str = Field(default_factory=new_id)
    filename: str = Field(...)
    type: str = Field(default="application/octet-stream", description="MIME type")
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    section: str = Field(default="")
    uploaded_at: datetime = Field(default_factory=utcnow)


class ContourMetadata(BaseModel):
    version: str = Field(default="0.1")
    created: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)
    completeness_score: int = Field(default=0, ge=0, le=100)


APPROVED_VERSION = "1.0-approved"


class ContourMap(BaseModel):
    """Accumulated truth snapshot of one customer's organization and systems."""
    organizational_hierarchy: list[HierarchyNode] = Field(default_factory=list)
    sor_authority_map: list[SOREntry] = Field(default_factory=list)
    conflict_register: list[Conflict] = Field(default_factory=list)
    management_overlay: list[HierarchyNode] = Field(default_factory=list)
    vocabulary_map: list[VocabularyEntry] = Field(default_factory=list)
    priority_queries: list[PriorityQuery] = Field(default_factory=list)
    follow_up_tasks: list[FollowUpTask] = Field(default_factory=list)
    raw_transcript: list[TranscriptEntry] = Field(default_factory=list)
    uploaded_artifacts: list[UploadedArtifact] = Field(default_factory=list)
    metadata: ContourMetadata = Field(default_factory=ContourMetadata)

    @classmethod
    def empty(cls, now: datetime | None = None) -> ContourMap:
        stamp = now or utcnow()
        return cls(metadata=ContourMetadata(created=stamp, last_updated=stamp))

    @property
    def is_approved(self) -> bool:
        return "approved" in self.metadata.version


# ---------------------------------------------------------------------------
# Section state
# ---------------------------------------------------------------------------

class StateAction(BaseModel):
    """A section state machine action. ``target`` is used by JUMP and RESUME."""
    type: StateActionType
    target: SectionId | None = None
    summary: str | None = None


class ConversationState(BaseModel):
    status: SessionStatus = SessionStatus.IN_PROGRESS
    current_section: SectionId = SectionId.BUSINESS_OVERVIEW
    section_status: dict[SectionId, SectionStatus] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Pre-meeting intelligence
# ---------------------------------------------------------------------------

class IntelSource(BaseModel):
    url: str
    type: Literal["SEC_FILING", "WEBSITE", "NEWS", "LINKEDIN", "CRUNCHBASE"] = "WEBSITE"
    extracted_at: datetime = Field(default_factory=utcnow)


class IntelBrief(BaseModel):
    """Pre-meeting intelligence gathered from public sources (section 0A)."""
    company_overview: str = Field(..., description="2-3 sentence summary of the company")
    industry: str = Field(default="Unknown")
    public_structure: list[str] = Field(default_factory=list, description="Known divisions or subsidiaries")
    known_systems: list[str] = Field(default_factory=list, description="Known enterprise systems")
    recent_events: list[str] = Field(default_factory=list, description="Mergers, reorgs, major changes")
    suggested_questions: list[str] = Field(default_factory=list)
    sources: list[IntelSource] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utcnow)


class PreMeetRequest(BaseModel):
    """Pre-meeting request email (section 0B)."""
    session_id: str
    stakeholder_email: str = ""
    subject: str
    body: str
    requested_artifacts: list[str] = Field(default_factory=list)
    upload_portal_url: str = ""


class MailResult(BaseModel):
    sent: bool
    message_id: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Session and messages
# ---------------------------------------------------------------------------

class Session(BaseModel):
    """One interview instance; owns its contour map and section state."""
    id: str = Field(default_factory=new_id)
    customer_id: str
    customer_name: str
    stakeholder_name: str
    stakeholder_role: str
    stakeholder_email: str = ""
    status: SessionStatus = SessionStatus.IN_PROGRESS
    current_section: SectionId = SectionId.BUSINESS_OVERVIEW
    section_status: dict[SectionId, SectionStatus] = Field(default_factory=dict)
    intel_brief: IntelBrief | None = None
    premeet_artifacts_received: list[str] = Field(default_factory=list)
    contour_map: ContourMap = Field(default_factory=ContourMap.empty)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def state(self) -> ConversationState:
        return ConversationState(
            status=self.status,
            current_section=self.current_section,
            section_status=dict(self.section_status),
        )

    def with_state(self, state: ConversationState) -> Session:
        return self.model_copy(update={
            "status": state.status,
            "current_section": state.current_section,
            "section_status": dict(state.section_status),
        })


class FileAttachment(BaseModel):
    """An inbound file. ``data`` holds the decoded bytes and is never persisted."""
    id: str = Field(default_factory=new_id)
    filename: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    data: bytes | None = Field(default=None, exclude=True)
    extracted_data: dict[str, Any] | None = None


class Message(BaseModel):
    id: str = Field(default_factory=new_id)
    session_id: str
    role: MessageRole
    content: str
    rich_content: list[dict[str, Any]] = Field(default_factory=list)
    files: list[FileAttachment] = Field(default_factory=list)
    section: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Rich display payloads
# ---------------------------------------------------------------------------

class TableContent(BaseModel):
    type: Literal["table"] = "table"
    title: str = ""
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class HierarchyDisplayNode(BaseModel):
    name: str = ""
    children: list[HierarchyDisplayNode] = Field(default_factory=list)


class HierarchyContent(BaseModel):
    type: Literal["hierarchy"] = "hierarchy"
    title: str = ""
    root: HierarchyDisplayNode = Field(default_factory=HierarchyDisplayNode)


class ComparisonEntry(BaseModel):
    system: str = ""
    value: str = ""
    is_match: bool = False


class ComparisonContent(BaseModel):
    type: Literal["comparison"] = "comparison"
    dimension: str = ""
    systems: list[ComparisonEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Model exchange
# ---------------------------------------------------------------------------

class ToolCall(BaseModel):
    """A structured, named request emitted by the model."""
    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:24]}")
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ModelResponse(BaseModel):
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: str | None = None


class TurnResult(BaseModel):
    """Outcome of one processed stakeholder turn."""
    agent_message: str
    rich_content: list[dict[str, Any]] = Field(default_factory=list)
    section: SectionId
    session_status: SessionStatus
    contour_completeness: int = 0


class ExportResult(BaseModel):
    success: bool
    graph_id: str | None = None
    nodes_created: int = 0
    edges_created: int = 0
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Agent Configuration (loaded from YAML)
# ---------------------------------------------------------------------------

class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint settings that take precedence over ``azure``."""
    endpoint: str = Field(default="")
    api_key: str = Field(default="")
    api_version: str = Field(default="")
    api_type: str | None = Field(default=None, description="e.g. 'anthropic' or 'openai'")


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-5.2", description="Default model")
    interviewer: str | None = Field(default=None)
    analyst: str | None = Field(default=None)
    writer: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class ServiceEndpoint(BaseModel):
    url: str = Field(default="")
    api_key: str = Field(default="")


class ServicesConfig(BaseModel):
    """External system-data collaborators."""
    aod: ServiceEndpoint = Field(default_factory=lambda: ServiceEndpoint(url="http://localhost:4001"))
    aam: ServiceEndpoint = Field(default_factory=lambda: ServiceEndpoint(url="http://localhost:4002"))
    dcl: ServiceEndpoint = Field(default_factory=lambda: ServiceEndpoint(url="http://localhost:4003"))


class SmtpConfig(BaseModel):
    host: str = Field(default="")
    port: int = Field(default=587)
    user: str = Field(default="")
    password: str = Field(default="")
    sender: str = Field(default="onboarding@example.com")


class AgentConfig(BaseModel):
    """Full agent configuration loaded from config.yaml."""
    agent_name: str = Field(default="contour-onboarding")

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)

    # Models
    models: ModelConfig = Field(default_factory=ModelConfig)

    # Model call settings
    timeout: int = Field(default=120, description="LLM call timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")
    max_tokens: int = Field(default=4096, description="Max tokens per interviewer response")
    max_tool_rounds: int = Field(default=10, description="Max tool-call rounds per turn")

    # Storage
    store_backend: str = Field(default="json", description="'json' or 'memory'")
    store_dir: str = Field(default="data/", description="Directory for JSON session blobs")

    # External collaborators
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    lookup_timeout: float = Field(default=10.0, description="Timeout for system lookups in seconds")
    export_timeout: float = Field(default=30.0, description="Timeout for contour export in seconds")
    live_data_enabled: bool = Field(default=True, description="Add live system data to the prompt")
    live_data_ttl: float = Field(default=300.0, description="Per-customer live data cache TTL in seconds")

    # Pre-meeting
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    portal_base_url: str = Field(default="http://localhost:3000")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
