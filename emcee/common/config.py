"""
Configuration Management for Emcee

Loads configuration from ~/.emcee/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("emcee.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".emcee"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
PATTERNS_PATH = CONFIG_DIR / "patterns.json"


@dataclass
class AgentConfig:
    """Identity of the agent in the meeting"""
    display_name: str = ""
    name_variations: List[str] = field(default_factory=list)


@dataclass
class DetectionConfig:
    """Caption aggregation and mention detection thresholds"""
    aggregation_window_ms: int = 3000
    pending_mention_timeout_ms: int = 3500
    fuzzy_match_threshold: float = 0.75
    llm_ambiguous_threshold: float = 0.85  # At or above: trust the local match
    llm_min_confidence_threshold: float = 0.50  # Below: look for indirect references
    hybrid_enabled: bool = True
    correction_enabled: bool = False
    context_size: int = 5


@dataclass
class LLMConfig:
    """LLM provider configuration shared by detection and response generation"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"


@dataclass
class BehaviorConfig:
    """Behavior pattern selection and response queue limits"""
    pattern_id: str = "supervised"
    patterns_path: str = str(PATTERNS_PATH)
    max_queue_size: int = 20
    history_retention_ms: int = 30 * 60 * 1000


@dataclass
class ServerConfig:
    """Control server and meeting bridge"""
    port: int = 8090
    bridge_url: str = ""
    bridge_timeout: float = 10.0
    signing_secret: str = ""  # HMAC secret for inbound bridge webhooks


@dataclass
class EmceeConfig:
    """Main Emcee configuration"""
    agent: AgentConfig = field(default_factory=AgentConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_agent_config(data: dict) -> AgentConfig:
    """Parse agent section from config dict"""
    agent_data = data.get("agent", {})
    return AgentConfig(
        display_name=agent_data.get("display_name", ""),
        name_variations=list(agent_data.get("name_variations", [])),
    )


def _parse_detection_config(data: dict) -> DetectionConfig:
    """Parse detection section from config dict"""
    detection_data = data.get("detection", {})
    return DetectionConfig(
        aggregation_window_ms=detection_data.get("aggregation_window_ms", 3000),
        pending_mention_timeout_ms=detection_data.get("pending_mention_timeout_ms", 3500),
        fuzzy_match_threshold=detection_data.get("fuzzy_match_threshold", 0.75),
        llm_ambiguous_threshold=detection_data.get("llm_ambiguous_threshold", 0.85),
        llm_min_confidence_threshold=detection_data.get("llm_min_confidence_threshold", 0.50),
        hybrid_enabled=detection_data.get("hybrid_enabled", True),
        correction_enabled=detection_data.get("correction_enabled", False),
        context_size=detection_data.get("context_size", 5),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "openai"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-haiku-4-5-20251001"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash"),
    )


def _parse_behavior_config(data: dict) -> BehaviorConfig:
    """Parse behavior section from config dict"""
    behavior_data = data.get("behavior", {})
    return BehaviorConfig(
        pattern_id=behavior_data.get("pattern_id", "supervised"),
        patterns_path=behavior_data.get("patterns_path", str(PATTERNS_PATH)),
        max_queue_size=behavior_data.get("max_queue_size", 20),
        history_retention_ms=behavior_data.get("history_retention_ms", 30 * 60 * 1000),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        port=server_data.get("port", 8090),
        bridge_url=server_data.get("bridge_url", ""),
        bridge_timeout=server_data.get("bridge_timeout", 10.0),
        signing_secret=server_data.get("signing_secret", ""),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> EmceeConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.emcee/config.json)
    3. Default values
    """
    config = EmceeConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.agent = _parse_agent_config(data)
            config.detection = _parse_detection_config(data)
            config.llm = _parse_llm_config(data)
            config.behavior = _parse_behavior_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    if os.getenv("EMCEE_AGENT_NAME"):
        config.agent.display_name = os.getenv("EMCEE_AGENT_NAME")
    if os.getenv("EMCEE_AGENT_VARIATIONS"):
        config.agent.name_variations = [
            v.strip() for v in os.getenv("EMCEE_AGENT_VARIATIONS").split(",") if v.strip()
        ]
    if os.getenv("EMCEE_PATTERN"):
        config.behavior.pattern_id = os.getenv("EMCEE_PATTERN")
    if os.getenv("EMCEE_PORT"):
        config.server.port = int(os.getenv("EMCEE_PORT"))
    if os.getenv("EMCEE_BRIDGE_URL"):
        config.server.bridge_url = os.getenv("EMCEE_BRIDGE_URL")
    if os.getenv("EMCEE_HYBRID_ENABLED"):
        config.detection.hybrid_enabled = _env_flag(os.getenv("EMCEE_HYBRID_ENABLED"))
    if os.getenv("EMCEE_SIGNING_SECRET"):
        config.server.signing_secret = os.getenv("EMCEE_SIGNING_SECRET")
        config._env_sourced_keys.add("signing_secret")

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "EMCEE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: EmceeConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "agent": {
            "display_name": config.agent.display_name,
            "name_variations": config.agent.name_variations,
        },
        "detection": {
            "aggregation_window_ms": config.detection.aggregation_window_ms,
            "pending_mention_timeout_ms": config.detection.pending_mention_timeout_ms,
            "fuzzy_match_threshold": config.detection.fuzzy_match_threshold,
            "llm_ambiguous_threshold": config.detection.llm_ambiguous_threshold,
            "llm_min_confidence_threshold": config.detection.llm_min_confidence_threshold,
            "hybrid_enabled": config.detection.hybrid_enabled,
            "correction_enabled": config.detection.correction_enabled,
            "context_size": config.detection.context_size,
        },
        "llm": llm_section,
        "behavior": {
            "pattern_id": config.behavior.pattern_id,
            "patterns_path": config.behavior.patterns_path,
            "max_queue_size": config.behavior.max_queue_size,
            "history_retention_ms": config.behavior.history_retention_ms,
        },
        "server": {
            "port": config.server.port,
            "bridge_url": config.server.bridge_url,
            "bridge_timeout": config.server.bridge_timeout,
            "signing_secret": "" if "signing_secret" in env_sourced else config.server.signing_secret,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
