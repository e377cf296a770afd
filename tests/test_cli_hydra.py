"""Tests for the Hydra-based CLI (cli.py)."""

from __future__ import annotations

from pathlib import Path

from hydra import compose, initialize_config_dir

import contour_onboarding
from contour_onboarding._hydra_conf import CLI_ONLY_KEYS, OnboardConf, register_configs
from contour_onboarding.cli import _MODE_DISPATCH, _to_agent_config, render_rich_content
from contour_onboarding.models import AgentConfig

CONF_DIR = str(Path(contour_onboarding.__file__).resolve().parent / "conf")


class TestDefaultConfig:
    """Verify the package's conf/config.yaml loads correctly."""

    def test_default_config_loads(self):
        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(config_name="config")
            assert cfg.mode == "serve"
            assert cfg.max_tool_rounds == 10
            assert cfg.session_id is None

    def test_default_config_converts_to_agent_config(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "test")
        monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-01-01")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://test.openai.azure.com")
        monkeypatch.setenv("DCL_URL", "http://dcl.test:9000")

        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(config_name="config")
            config = _to_agent_config(cfg)
            assert isinstance(config, AgentConfig)
            assert config.agent_name == "contour-onboarding"
            assert config.azure.api_key == "test"
            assert config.services.dcl.url == "http://dcl.test:9000"

    def test_overrides_apply(self):
        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(config_name="config", overrides=["mode=chat", "store_backend=memory", "session_id=abc"])
            assert cfg.mode == "chat"
            assert cfg.session_id == "abc"
            assert _to_agent_config(cfg).store_backend == "memory"


class TestModeDispatch:
    def test_all_modes_present(self):
        assert set(_MODE_DISPATCH.keys()) == {"serve", "chat", "show", "approve", "export"}

    def test_all_modes_are_callable(self):
        for name, handler in _MODE_DISPATCH.items():
            assert callable(handler), f"Handler for mode {name!r} is not callable"


class TestCliOnlyKeys:
    """CLI_ONLY_KEYS should match the extra fields in OnboardConf."""

    def test_cli_keys_not_in_agent_config(self):
        fields = set(AgentConfig.model_fields.keys())
        for key in CLI_ONLY_KEYS:
            assert key not in fields, f"CLI-only key {key!r} found in AgentConfig"

    def test_cli_keys_in_onboard_conf(self):
        conf_fields = set(OnboardConf.__dataclass_fields__)
        for key in CLI_ONLY_KEYS:
            assert key in conf_fields, f"CLI-only key {key!r} not found in OnboardConf"

    def test_every_agent_config_field_is_mirrored(self):
        conf_fields = set(OnboardConf.__dataclass_fields__)
        for key in AgentConfig.model_fields:
            assert key in conf_fields, f"AgentConfig field {key!r} missing from OnboardConf"


class TestRenderRichContent:
    def test_renders_each_kind(self, capsys):
        render_rich_content({"type": "table", "title": "SOR", "headers": ["Dim", "System"], "rows": [["CC", "SAP"]]})
        render_rich_content({"type": "hierarchy", "title": "Org", "root": {"name": "Acme", "children": [{"name": "East"}]}})
        render_rich_content({"type": "comparison", "dimension": "Region", "systems": [{"system": "SAP", "value": "EMEA", "is_match": True}]})
        out = capsys.readouterr().out
        assert "SAP" in out
        assert "East" in out
        assert "EMEA" in out
