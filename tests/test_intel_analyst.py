"""Tests for the IntelAnalyst agent and the intel gathering flow."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from contour_onboarding.agents.intel_analyst import (
    DEFAULT_QUESTIONS,
    SYSTEM_PROMPT,
    IntelGatherer,
    make_intel_analyst,
    minimal_brief,
    parse_intel_brief,
)
from contour_onboarding.models import AgentConfig, IntelSource
from contour_onboarding.tools.scraper import ScrapeResult

SOURCE = IntelSource(url="https://www.sec.gov/x", type="SEC_FILING")


def _scraper(results: list[ScrapeResult]) -> MagicMock:
    scraper = MagicMock()
    scraper.scrape.return_value = results
    return scraper


class TestIntelAnalystAgent:
    def test_make_intel_analyst_returns_agent(self, config):
        agent = make_intel_analyst(config)
        assert agent.name == "IntelAnalyst"

    def test_system_prompt_asks_for_json(self):
        assert "JSON" in SYSTEM_PROMPT
        assert "suggested_questions" in SYSTEM_PROMPT

    def test_role_uses_analyst_model(self):
        from contour_onboarding.config import build_role_llm_config

        config = AgentConfig(models={"default": "gpt-5.2", "analyst": "gpt-4o-mini"})
        assert build_role_llm_config("intel_analyst", config)["config_list"][0]["model"] == "gpt-4o-mini"


class TestParseIntelBrief:
    def test_valid_json(self):
        raw = json.dumps({
            "company_overview": "Acme makes anvils.",
            "industry": "Manufacturing",
            "public_structure": ["Anvils", "Rockets"],
            "known_systems": ["SAP"],
            "recent_events": [],
            "suggested_questions": ["How do Anvils and Rockets report?"],
        })
        brief = parse_intel_brief(raw, "Acme", [SOURCE])
        assert brief.industry == "Manufacturing"
        assert brief.public_structure == ["Anvils", "Rockets"]
        assert brief.sources == [SOURCE]

    def test_fenced_json_with_trailing_comma(self):
        raw = '```json\n{"company_overview": "Acme.", "known_systems": ["SAP",],}\n```'
        brief = parse_intel_brief(raw, "Acme", [])
        assert brief.known_systems == ["SAP"]
        assert brief.industry == "Unknown"

    def test_garbage_falls_back_to_minimal(self):
        brief = parse_intel_brief("I could not find anything.", "Acme", [SOURCE])
        assert brief.company_overview.startswith("Acme: limited public information")
        assert brief.suggested_questions == DEFAULT_QUESTIONS
        assert brief.sources == [SOURCE]


class TestIntelGatherer:
    def test_no_scrape_results_gives_minimal_brief(self, config):
        gatherer = IntelGatherer(config, _scraper([]))
        with patch.object(IntelGatherer, "_ask") as ask:
            brief = gatherer.gather("Acme")
        ask.assert_not_called()
        assert brief == minimal_brief("Acme").model_copy(update={"generated_at": brief.generated_at})

    def test_analyst_reply_is_parsed(self, config):
        gatherer = IntelGatherer(config, _scraper([ScrapeResult(source=SOURCE, text="10-K: Acme Corp")]))
        reply = SimpleNamespace(summary='{"company_overview": "Acme Corp files 10-Ks.", "industry": "Retail"}')
        with patch.object(IntelGatherer, "_ask", return_value=reply) as ask:
            brief = gatherer.gather("Acme")
        assert "10-K: Acme Corp" in ask.call_args.args[0]
        assert brief.industry == "Retail"
        assert brief.sources == [SOURCE]

    def test_analyst_failure_gives_minimal_brief(self, config):
        gatherer = IntelGatherer(config, _scraper([ScrapeResult(source=SOURCE, text="data")]))
        with patch.object(IntelGatherer, "_ask", side_effect=RuntimeError("rate limited")):
            brief = gatherer.gather("Acme")
        assert brief.industry == "Unknown"
        assert brief.sources == [SOURCE]

    def test_scraper_failure_is_absorbed(self, config):
        scraper = MagicMock()
        scraper.scrape.side_effect = RuntimeError("dns")
        brief = IntelGatherer(config, scraper).gather("Acme")
        assert brief.suggested_questions == DEFAULT_QUESTIONS
