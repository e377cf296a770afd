"""IntelAnalyst agent: turns scraped public text into a pre-meeting brief (section 0A)."""

from __future__ import annotations

import logging
from typing import Any

import autogen

from ..config import build_role_llm_config
from ..models import AgentConfig, IntelBrief, IntelSource
from ..tools.scraper import NullScraper, PublicSourceScraper
from .json_output import parse_json_object, response_text, str_list

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an enterprise research analyst preparing an onboarding interview.

Given public information about a company, produce a structured intelligence brief.
Output ONLY a valid JSON object with exactly these fields:
{
  "company_overview": "2-3 sentence summary of the company",
  "industry": "Primary industry",
  "public_structure": ["Known divisions, subsidiaries or business units"],
  "known_systems": ["Known enterprise systems (ERP, CRM, HCM, ...)"],
  "recent_events": ["Recent mergers, acquisitions, reorganizations"],
  "suggested_questions": ["5-8 targeted interview questions"]
}
Use an empty array or "Unknown" when information is missing. No markdown.
"""

DEFAULT_QUESTIONS = [
    "How is your company organized at the highest level?",
    "What are your primary business units or divisions?",
    "What ERP or financial systems do you use?",
    "Have there been any recent reorganizations?",
    "Which system is your source of truth for organizational data?",
]


def minimal_brief(customer_name: str, sources: list[IntelSource] | None = None) -> IntelBrief:
    """Brief used when nothing could be scraped or the analysis was unreadable."""
    return IntelBrief(
        company_overview=(
            f"{customer_name}: limited public information available. "
            "The interview will start from scratch."
        ),
        industry="Unknown",
        suggested_questions=list(DEFAULT_QUESTIONS),
        sources=list(sources or []),
    )


def parse_intel_brief(raw: str, customer_name: str, sources: list[IntelSource]) -> IntelBrief:
    data, error = parse_json_object(raw)
    if data is None:
        logger.warning("Intel brief was not valid JSON (%s), using minimal brief", error)
        return minimal_brief(customer_name, sources)
    return IntelBrief(
        company_overview=str(data.get("company_overview") or f"{customer_name}: no public information found."),
        industry=str(data.get("industry") or "Unknown"),
        public_structure=str_list(data.get("public_structure")),
        known_systems=str_list(data.get("known_systems")),
        recent_events=str_list(data.get("recent_events")),
        suggested_questions=str_list(data.get("suggested_questions")),
        sources=sources,
    )


def make_intel_analyst(config: AgentConfig) -> autogen.AssistantAgent:
    """Create the IntelAnalyst agent."""
    return autogen.AssistantAgent(
        name="IntelAnalyst",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("intel_analyst", config),
    )


class IntelGatherer:
    """Scrape public sources, then ask the IntelAnalyst for a brief."""

    def __init__(self, config: AgentConfig, scraper: PublicSourceScraper | None = None) -> None:
        self.config = config
        self.scraper = scraper or NullScraper()

    def _ask(self, message: str) -> Any:
        analyst = make_intel_analyst(self.config)
        proxy = autogen.UserProxyAgent(
            name="Orchestrator",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        return proxy.initiate_chat(analyst, message=message, max_turns=1)

    def gather(self, customer_name: str) -> IntelBrief:
        try:
            results = self.scraper.scrape(customer_name)
        except Exception as exc:
            logger.warning("Scraping failed for %s: %s", customer_name, exc)
            results = []
        sources = [r.source for r in results]
        if not results:
            return minimal_brief(customer_name, sources)

        raw_data = "\n\n---\n\n".join(r.text for r in results)
        message = f'Analyze this public information about "{customer_name}".\n\nRAW DATA:\n{raw_data}'
        try:
            response = self._ask(message)
        except Exception as exc:
            logger.warning("Intel analysis failed for %s: %s", customer_name, exc)
            return minimal_brief(customer_name, sources)
        return parse_intel_brief(response_text(response), customer_name, sources)
