"""HTTP clients for the enterprise system collaborators.

* AOD: asset inventory (which systems exist).
* AAM: connection topology (how systems exchange data).
* DCL: semantic graph (existing dimension data, contour export).

Every read degrades to an empty or ``None`` result with a logged warning so
a collaborator outage never fails an interview turn.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..models import ContourMap, ExportResult, ServiceEndpoint, utcnow

logger = logging.getLogger(__name__)


class _ServiceClient:
    """Base class holding the endpoint, bearer key and timeout."""

    name = "service"

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = endpoint.url.rstrip("/")
        self.api_key = endpoint.api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self, timeout: float | None = None) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any | None:
        try:
            with self._client() as client:
                response = client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s unavailable (%s): %s", self.name, path, exc)
            return None
        if response.status_code != 200:
            logger.warning("%s returned %d for %s", self.name, response.status_code, path)
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("%s returned invalid JSON for %s", self.name, path)
            return None


class AssetInventoryClient(_ServiceClient):
    name = "AOD"

    def get_asset_inventory(self, customer_id: str) -> dict[str, Any]:
        data = self._get_json(f"/api/customers/{quote(customer_id, safe='')}/assets")
        if not isinstance(data, dict):
            return {
                "customer_id": customer_id,
                "systems": [],
                "total_count": 0,
                "last_scan": utcnow().isoformat(),
            }
        return data

    def get_system_details(self, customer_id: str, system_id: str) -> dict[str, Any] | None:
        data = self._get_json(
            f"/api/customers/{quote(customer_id, safe='')}/assets/{quote(system_id, safe='')}"
        )
        return data if isinstance(data, dict) else None


class TopologyClient(_ServiceClient):
    name = "AAM"

    def get_topology(self, customer_id: str) -> dict[str, Any]:
        data = self._get_json(f"/api/customers/{quote(customer_id, safe='')}/topology")
        if not isinstance(data, dict):
            return {
                "customer_id": customer_id,
                "connections": [],
                "total_connections": 0,
                "last_updated": utcnow().isoformat(),
            }
        return data

    def get_field_mappings(
        self, customer_id: str, source_system: str, target_system: str
    ) -> list[dict[str, Any]]:
        data = self._get_json(
            f"/api/customers/{quote(customer_id, safe='')}/mappings",
            params={"source": source_system, "target": target_system},
        )
        return data if isinstance(data, list) else []


class GraphClient(_ServiceClient):
    name = "DCL"

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        *,
        timeout: float = 10.0,
        export_timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(endpoint, timeout=timeout, transport=transport)
        self.export_timeout = export_timeout

    def get_graph_summary(self, customer_id: str) -> dict[str, Any] | None:
        data = self._get_json(f"/api/customers/{quote(customer_id, safe='')}/graph")
        return data if isinstance(data, dict) else None

    def get_dimension_data(self, customer_id: str, dimension: str) -> dict[str, Any] | None:
        data = self._get_json(
            f"/api/customers/{quote(customer_id, safe='')}/dimensions/{quote(dimension, safe='')}"
        )
        return data if isinstance(data, dict) else None

    def export_contour_map(self, customer_id: str, contour_map: ContourMap) -> ExportResult:
        """POST an approved map to the graph builder. Failures come back as ``success=False``."""
        payload = {
            "contour_map": contour_map.model_dump(mode="json"),
            "exported_at": utcnow().isoformat(),
        }
        path = f"/api/customers/{quote(customer_id, safe='')}/contour"
        try:
            with self._client(self.export_timeout) as client:
                response = client.post(path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("DCL export failed: %s", exc)
            return ExportResult(success=False, error=str(exc) or "DCL API unavailable")

        if response.status_code >= 400:
            return ExportResult(
                success=False,
                error=f"DCL API returned {response.status_code}: {response.text}",
            )
        try:
            return ExportResult.model_validate(response.json())
        except ValueError as exc:
            logger.warning("DCL export returned an unreadable body: %s", exc)
            return ExportResult(success=False, error="DCL API returned an unreadable response")


class SystemClients:
    """Bundle of the three collaborator clients."""

    def __init__(
        self,
        aod: AssetInventoryClient,
        aam: TopologyClient,
        dcl: GraphClient,
    ) -> None:
        self.aod = aod
        self.aam = aam
        self.dcl = dcl

    @classmethod
    def from_config(cls, config, transport: httpx.BaseTransport | None = None) -> SystemClients:
        services = config.services
        return cls(
            aod=AssetInventoryClient(services.aod, timeout=config.lookup_timeout, transport=transport),
            aam=TopologyClient(services.aam, timeout=config.lookup_timeout, transport=transport),
            dcl=GraphClient(
                services.dcl,
                timeout=config.lookup_timeout,
                export_timeout=config.export_timeout,
                transport=transport,
            ),
        )
