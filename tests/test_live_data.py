"""Tests for the live system data provider and its TTL cache."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from contour_onboarding.tools.live_data import LiveDataProvider, LiveSystemData, TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clients() -> MagicMock:
    clients = MagicMock()
    clients.aod.get_asset_inventory.return_value = {"systems": [{"name": "SAP", "type": "ERP"}]}
    clients.aam.get_topology.return_value = {"connections": []}
    clients.dcl.get_graph_summary.return_value = {"nodes": 10}
    return clients


class TestTTLCache:
    def test_get_within_ttl(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("acme", "value")
        clock.now += 299
        assert cache.get("acme") == "value"

    def test_expires_at_ttl(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("acme", "value")
        clock.now += 300
        assert cache.get("acme") is None

    def test_set_evicts_expired_entries(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("acme", 1)
        cache.set("globex", 2)
        clock.now += 300
        cache.set("initech", 3)
        assert cache.size() == 1
        assert cache.get("initech") == 3

    def test_clear(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("acme", 1)
        cache.clear()
        assert cache.get("acme") is None


class TestLiveDataProvider:
    def test_fetch_combines_lookups(self, clients, clock):
        data = LiveDataProvider(clients, TTLCache(clock=clock)).fetch("acme")
        assert data.asset_inventory["systems"][0]["name"] == "SAP"
        # Empty topology counts as absent
        assert data.topology is None
        assert data.graph_summary == {"nodes": 10}

    def test_failed_lookup_is_absent(self, clients, clock):
        clients.dcl.get_graph_summary.side_effect = RuntimeError("boom")
        data = LiveDataProvider(clients, TTLCache(clock=clock)).fetch("acme")
        assert data.graph_summary is None
        assert data.asset_inventory is not None

    def test_cached_per_customer(self, clients, clock):
        provider = LiveDataProvider(clients, TTLCache(ttl=300, clock=clock))
        provider.fetch("acme")
        provider.fetch("acme")
        assert clients.aod.get_asset_inventory.call_count == 1

        provider.fetch("globex")
        assert clients.aod.get_asset_inventory.call_count == 2

    def test_refetch_after_ttl(self, clients, clock):
        provider = LiveDataProvider(clients, TTLCache(ttl=300, clock=clock))
        provider.fetch("acme")
        clock.now += 301
        provider.fetch("acme")
        assert clients.aod.get_asset_inventory.call_count == 2

    def test_is_empty(self):
        assert LiveSystemData().is_empty
        assert not LiveSystemData(topology={"connections": [1]}).is_empty
