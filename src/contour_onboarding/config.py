"""Configuration loader and LLM config builder.

Reads agent settings from a YAML config file with ``${ENV_VAR}`` interpolation
and builds AG2 ``llm_config`` dicts for each model-backed role.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AgentConfig, AzureConfig, ModelEndpointOverride

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${ENV_VAR}`` references in strings."""
    if isinstance(value, str):
        return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_azure_fallbacks(config: AgentConfig) -> AgentConfig:
    """Fill empty azure credentials from environment variables and normalise endpoint."""
    if not config.azure.api_key:
        config.azure.api_key = os.getenv("AZURE_OPENAI_API_KEY", "")
    if not config.azure.api_version:
        config.azure.api_version = os.getenv("AZURE_OPENAI_API_VERSION", "")
    if not config.azure.endpoint:
        config.azure.endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    config.azure.endpoint = config.azure.endpoint.rstrip("/")
    return config


def apply_service_fallbacks(config: AgentConfig) -> AgentConfig:
    """Fill empty collaborator URLs and keys from ``AOD_*``, ``AAM_*`` and ``DCL_*`` variables."""
    for name in ("aod", "aam", "dcl"):
        endpoint = getattr(config.services, name)
        prefix = name.upper()
        endpoint.url = (os.getenv(f"{prefix}_URL") or endpoint.url).rstrip("/")
        if not endpoint.api_key:
            endpoint.api_key = os.getenv(f"{prefix}_API_KEY", "")
    return config


def load_config(config_path: str | Path) -> AgentConfig:
    """Load an ``AgentConfig`` from a YAML file.

    Environment variables referenced as ``${VAR_NAME}`` are resolved.
    If ``azure`` fields are empty after resolution, they fall back to
    well-known environment variables (``AZURE_OPENAI_*``).
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    resolved = _resolve_env_vars(raw)
    config = AgentConfig.model_validate(resolved)
    return apply_service_fallbacks(apply_azure_fallbacks(config))


# ---------------------------------------------------------------------------
# LLM config builder
# ---------------------------------------------------------------------------

# Which ``models`` field names the deployment for each model-backed role.
ROLE_MODEL_FIELDS: dict[str, str] = {
    "interviewer": "interviewer",
    "intel_analyst": "analyst",
    "premeet_writer": "writer",
}

_AZURE_OPENAI_HOSTS = ("openai.azure.com", "cognitiveservices.azure.com")


def model_for_role(role: str, config: AgentConfig) -> str:
    """Deployment name for *role*, falling back to ``models.default``."""
    field = ROLE_MODEL_FIELDS.get(role.lower())
    chosen = getattr(config.models, field) if field else None
    return chosen or config.models.default


def _config_entry(
    model: str,
    azure: AzureConfig,
    override: ModelEndpointOverride | None = None,
) -> dict[str, Any]:
    """One AG2 ``config_list`` entry.

    An override's ``api_type`` wins and its endpoint becomes ``base_url``.
    Azure OpenAI hosts get deployment routing; any other endpoint is treated
    as OpenAI-compatible.
    """
    endpoint = azure.endpoint
    api_key = azure.api_key
    api_version = azure.api_version
    api_type = None
    if override is not None:
        endpoint = override.endpoint.rstrip("/") if override.endpoint else endpoint
        api_key = override.api_key or api_key
        api_version = override.api_version or api_version
        api_type = override.api_type

    entry: dict[str, Any] = {"model": model, "api_key": api_key}
    if api_type:
        entry["api_type"] = api_type
    elif endpoint and any(host in endpoint.lower() for host in _AZURE_OPENAI_HOSTS):
        entry.update(
            api_type="azure",
            azure_endpoint=endpoint,
            api_version=api_version,
            azure_deployment=model,
        )
        return entry
    if endpoint:
        entry["base_url"] = endpoint
    return entry


def build_role_llm_config(role: str, config: AgentConfig) -> dict[str, Any]:
    """AG2 ``llm_config`` for *role* (``interviewer``, ``intel_analyst`` or ``premeet_writer``).

    Per-model endpoint overrides in ``models.overrides`` take precedence over
    the shared ``azure`` settings.
    """
    model = model_for_role(role, config)
    entry = _config_entry(model, config.azure, config.models.overrides.get(model))
    return {"config_list": [entry], "timeout": config.timeout, "seed": config.seed}
