"""PremeetWriter agent: drafts the pre-meeting request email (section 0B)."""

from __future__ import annotations

import logging
from typing import Any

import autogen

from ..config import build_role_llm_config
from ..models import AgentConfig, IntelBrief, PreMeetRequest, Session
from .json_output import parse_json_object, response_text, str_list

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You write short, professional emails for an enterprise data onboarding team.

The email must:
1. Stay under 200 words
2. Explain that we are preparing for a data configuration interview
3. Request specific documents that would speed up the session
4. Include the upload portal link
5. Be warm but efficient

Output ONLY a valid JSON object:
{
  "subject": "Email subject line",
  "body": "Full email body text",
  "requested_artifacts": ["Specific documents requested"]
}
No markdown.
"""

DEFAULT_ARTIFACTS = [
    "Chart of accounts or cost center listing",
    "Organizational chart",
    "List of key enterprise systems",
    "Recent restructuring documentation",
]


def default_subject(customer_name: str) -> str:
    return f"Preparing for your {customer_name} data onboarding session"


def default_body(stakeholder_name: str, customer_name: str, upload_url: str) -> str:
    return f"""Hi {stakeholder_name},

We're preparing for your upcoming data configuration session for {customer_name}. It would help if you could share a few documents before we meet.

If any of the following are at hand, please upload them here:
{upload_url}

Helpful documents:
- Chart of accounts or cost center listing (Excel/CSV)
- Organizational chart or reporting structure
- List of key systems and their purposes
- Recent or planned changes to the org structure

Don't worry if you don't have all of these. We'll work with whatever is available, and even a screenshot of your org chart helps.

Looking forward to our session!

Best regards,
Onboarding Team"""


def upload_url(portal_base_url: str, session_id: str) -> str:
    return f"{portal_base_url.rstrip('/')}/premeet/{session_id}"


def build_request_message(session: Session, url: str, brief: IntelBrief | None) -> str:
    lines = [
        "Draft the pre-meeting email.",
        "",
        "Context:",
        f"- Customer: {session.customer_name}",
        f"- Stakeholder: {session.stakeholder_name} ({session.stakeholder_role})",
        f"- Upload portal: {url}",
    ]
    if brief is not None:
        lines.append(f"- Known systems: {', '.join(brief.known_systems) or 'None identified'}")
        lines.append(f"- Known structure: {', '.join(brief.public_structure) or 'None identified'}")
    return "\n".join(lines)


def parse_premeet_request(raw: str, session: Session, url: str) -> PreMeetRequest:
    """Parse the writer's reply, filling each missing field with its default."""
    data, error = parse_json_object(raw)
    if data is None:
        logger.warning("Pre-meeting draft was not valid JSON (%s), using default email", error)
        data = {}
    return PreMeetRequest(
        session_id=session.id,
        stakeholder_email=session.stakeholder_email,
        subject=str(data.get("subject") or default_subject(session.customer_name)),
        body=str(data.get("body") or default_body(session.stakeholder_name, session.customer_name, url)),
        requested_artifacts=str_list(data.get("requested_artifacts")) or list(DEFAULT_ARTIFACTS),
        upload_portal_url=url,
    )


def make_premeet_writer(config: AgentConfig) -> autogen.AssistantAgent:
    """Create the PremeetWriter agent."""
    return autogen.AssistantAgent(
        name="PremeetWriter",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("premeet_writer", config),
    )


class PremeetDrafter:
    def __init__(self, config: AgentConfig) -> None:
        self.config = config

    def _ask(self, message: str) -> Any:
        writer = make_premeet_writer(self.config)
        proxy = autogen.UserProxyAgent(
            name="Orchestrator",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        return proxy.initiate_chat(writer, message=message, max_turns=1)

    def draft(self, session: Session) -> PreMeetRequest:
        url = upload_url(self.config.portal_base_url, session.id)
        message = build_request_message(session, url, session.intel_brief)
        try:
            response = self._ask(message)
        except Exception as exc:
            logger.warning("Pre-meeting draft failed for %s: %s", session.id, exc)
            return parse_premeet_request("", session, url)
        return parse_premeet_request(response_text(response), session, url)
