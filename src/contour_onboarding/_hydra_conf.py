"""Hydra structured config dataclasses.

These mirror the Pydantic ``AgentConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``AgentConfig`` via
``cli._to_agent_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "gpt-5.2"
    interviewer: str | None = None
    analyst: str | None = None
    writer: str | None = None
    overrides: dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceEndpointConf:
    url: str = ""
    api_key: str = ""


@dataclass
class ServicesConf:
    aod: ServiceEndpointConf = field(default_factory=lambda: ServiceEndpointConf(url="http://localhost:4001"))
    aam: ServiceEndpointConf = field(default_factory=lambda: ServiceEndpointConf(url="http://localhost:4002"))
    dcl: ServiceEndpointConf = field(default_factory=lambda: ServiceEndpointConf(url="http://localhost:4003"))


@dataclass
class SmtpConf:
    host: str = "${oc.env:SMTP_HOST,''}"
    port: int = 587
    user: str = "${oc.env:SMTP_USER,''}"
    password: str = "${oc.env:SMTP_PASS,''}"
    sender: str = "onboarding@example.com"


@dataclass
class OnboardConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "serve"
    verbose: bool = False
    quiet: bool = False
    session_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    stakeholder_name: str | None = None
    stakeholder_role: str | None = None

    # --- AgentConfig fields (1:1 mapping) ---
    agent_name: str = "contour-onboarding"

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    timeout: int = 120
    seed: int = 42
    max_tokens: int = 4096
    max_tool_rounds: int = 10

    store_backend: str = "json"
    store_dir: str = "data/"

    services: ServicesConf = field(default_factory=ServicesConf)
    lookup_timeout: float = 10.0
    export_timeout: float = 30.0
    live_data_enabled: bool = True
    live_data_ttl: float = 300.0

    smtp: SmtpConf = field(default_factory=SmtpConf)
    portal_base_url: str = "http://localhost:3000"

    host: str = "0.0.0.0"
    port: int = 3000


# Keys present in OnboardConf that are NOT part of AgentConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "verbose", "quiet", "session_id",
    "customer_id", "customer_name", "stakeholder_name", "stakeholder_role",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="onboard_schema", node=OnboardConf)
