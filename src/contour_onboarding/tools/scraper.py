"""Public-source scraping collaborator for the universe scan (section 0A).

Scrapers return raw text snippets with their source. Failures yield no
result rather than raising.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel

from ..models import IntelSource

logger = logging.getLogger(__name__)


class ScrapeResult(BaseModel):
    source: IntelSource
    text: str


class PublicSourceScraper(Protocol):
    def scrape(self, company_name: str) -> list[ScrapeResult]: ...


class NullScraper:
    """Finds nothing. The intel brief then falls back to its minimal default."""

    def scrape(self, company_name: str) -> list[ScrapeResult]:
        return []


class SecFilingsScraper:
    """Look up recent 10-K filings through the SEC full-text search index."""

    search_url = "https://efts.sec.gov/LATEST/search-index"

    def __init__(
        self,
        user_agent: str = "contour-onboarding admin@example.com",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    def scrape(self, company_name: str) -> list[ScrapeResult]:
        params = {"q": f'"{company_name}"', "forms": "10-K"}
        try:
            with httpx.Client(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = client.get(self.search_url, params=params)
            response.raise_for_status()
            hits = response.json().get("hits", {}).get("hits", [])
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("SEC filing lookup failed for %s: %s", company_name, exc)
            return []
        if not hits:
            return []

        lines = []
        for hit in hits[:3]:
            src = hit.get("_source", {}) if isinstance(hit, dict) else {}
            names = ", ".join(src.get("display_names") or []) or "N/A"
            lines.append(f"Filing: {names} - {src.get('file_description', '')} ({src.get('file_date', '')})")
        browse_url = (
            "https://www.sec.gov/cgi-bin/browse-edgar"
            f"?company={quote_plus(company_name)}&type=10-K"
        )
        return [ScrapeResult(
            source=IntelSource(url=browse_url, type="SEC_FILING"),
            text=f'SEC filings for "{company_name}":\n' + "\n".join(lines),
        )]
