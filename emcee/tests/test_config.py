"""Tests for config loading, env overrides and secret handling."""

import json
import logging
import os
import stat

from unittest.mock import patch


def _patched(tmp_path, data=None):
    config_file = tmp_path / "config.json"
    if data is not None:
        config_file.write_text(data if isinstance(data, str) else json.dumps(data))
    return (
        patch("emcee.common.config.CONFIG_PATH", config_file),
        patch("emcee.common.config.CONFIG_DIR", tmp_path),
    )


class TestDefaults:
    def test_detection_defaults(self):
        from emcee.common.config import DetectionConfig

        cfg = DetectionConfig()
        assert cfg.aggregation_window_ms == 3000
        assert cfg.pending_mention_timeout_ms == 3500
        assert cfg.fuzzy_match_threshold == 0.75
        assert cfg.llm_ambiguous_threshold == 0.85
        assert cfg.llm_min_confidence_threshold == 0.50

    def test_missing_file_gives_defaults(self, tmp_path):
        from emcee.common.config import load_config

        path_patch, dir_patch = _patched(tmp_path)
        with path_patch, dir_patch, patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.agent.display_name == ""
        assert cfg.behavior.pattern_id == "supervised"
        assert cfg.behavior.max_queue_size == 20
        assert cfg.server.port == 8090


class TestLoadConfig:
    def test_file_sections_are_parsed(self, tmp_path):
        from emcee.common.config import load_config

        path_patch, dir_patch = _patched(tmp_path, {
            "agent": {"display_name": "Steve", "name_variations": ["Stevie"]},
            "detection": {"aggregation_window_ms": 2000, "hybrid_enabled": False},
            "llm": {"provider": "anthropic", "anthropic_api_key": "sk-ant-file"},
            "behavior": {"pattern_id": "polite-queue-voice"},
            "server": {"bridge_url": "http://localhost:9000"},
        })
        with path_patch, dir_patch, patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.agent.display_name == "Steve"
        assert cfg.agent.name_variations == ["Stevie"]
        assert cfg.detection.aggregation_window_ms == 2000
        assert cfg.detection.pending_mention_timeout_ms == 3500
        assert cfg.detection.hybrid_enabled is False
        assert cfg.llm.provider == "anthropic"
        assert cfg.behavior.pattern_id == "polite-queue-voice"
        assert cfg.server.bridge_url == "http://localhost:9000"

    def test_malformed_file_logs_warning(self, tmp_path, caplog):
        from emcee.common.config import load_config

        path_patch, dir_patch = _patched(tmp_path, "{not json")
        with path_patch, dir_patch, patch.dict(os.environ, {}, clear=True), \
                caplog.at_level(logging.WARNING, logger="emcee.common.config"):
            cfg = load_config()

        assert "Failed to load config file" in caplog.text
        assert cfg.detection.aggregation_window_ms == 3000

    def test_env_overrides_file(self, tmp_path):
        from emcee.common.config import load_config

        path_patch, dir_patch = _patched(tmp_path, {"agent": {"display_name": "Steve"}})
        env = {
            "EMCEE_AGENT_NAME": "Jordan",
            "EMCEE_AGENT_VARIATIONS": "Jordy, J ,",
            "EMCEE_PATTERN": "autonomous-chat",
            "EMCEE_PORT": "9100",
            "EMCEE_HYBRID_ENABLED": "no",
            "OPENAI_API_KEY": "sk-env",
        }
        with path_patch, dir_patch, patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.agent.display_name == "Jordan"
        assert cfg.agent.name_variations == ["Jordy", "J"]
        assert cfg.behavior.pattern_id == "autonomous-chat"
        assert cfg.server.port == 9100
        assert cfg.detection.hybrid_enabled is False
        assert cfg.llm.openai_api_key == "sk-env"
        assert "openai_api_key" in cfg._env_sourced_keys

    def test_gemini_key_alias(self, tmp_path):
        from emcee.common.config import load_config

        path_patch, dir_patch = _patched(tmp_path)
        with path_patch, dir_patch, patch.dict(os.environ, {"GEMINI_API_KEY": "g-key"}, clear=True):
            cfg = load_config()

        assert cfg.llm.google_api_key == "g-key"


class TestSaveConfig:
    def test_env_sourced_secrets_are_not_saved(self, tmp_path):
        from emcee.common.config import load_config, save_config

        path_patch, dir_patch = _patched(tmp_path, {
            "llm": {"anthropic_api_key": "sk-ant-file"},
        })
        env = {"OPENAI_API_KEY": "sk-env", "EMCEE_SIGNING_SECRET": "shh"}
        with path_patch, dir_patch, patch.dict(os.environ, env, clear=True):
            cfg = load_config()
            save_config(cfg)

        saved = json.loads((tmp_path / "config.json").read_text())
        assert saved["llm"]["openai_api_key"] == ""
        assert saved["llm"]["anthropic_api_key"] == "sk-ant-file"
        assert saved["server"]["signing_secret"] == ""

    def test_saved_file_is_private(self, tmp_path):
        from emcee.common.config import EmceeConfig, save_config

        path_patch, dir_patch = _patched(tmp_path)
        with path_patch, dir_patch:
            save_config(EmceeConfig())

        mode = stat.S_IMODE((tmp_path / "config.json").stat().st_mode)
        assert mode == 0o600
