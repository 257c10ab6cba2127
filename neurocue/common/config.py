"""
Configuration Management for NeuroCue

Loads configuration from ~/.neurocue/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List

logger = logging.getLogger("neurocue.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".neurocue"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_PATH = CONFIG_DIR / "artifacts.json"


# Phrase sets spoken to open/close a chart capture
DEFAULT_START_PHRASES = [
    "start chart",
    "start a chart",
    "begin chart",
    "start visualization",
    "start visual",
]
DEFAULT_STOP_PHRASES = [
    "end chart",
    "stop chart",
    "end the chart",
    "end visualization",
    "end visual",
    "chart over",
]
# Speech recognition rarely gets the assistant's name right
DEFAULT_WAKE_PHRASES = [
    "hey neuro",
    "hey nero",
    "hey neural",
    "hey newro",
    "hey nuro",
    "a neuro",
]
DEFAULT_INTENT_PHRASES = [
    "create a chart",
    "make a chart",
    "create chart",
    "make chart",
    "draw a chart",
    "show a chart",
    "visualize",
]

DEFAULT_FILLER_WORDS = [
    "please",
    "kindly",
    "thank you",
    "thanks",
    "you know",
    "umm",
    "um",
    "uhh",
    "uh",
    "hmm",
    "er",
]

DEFAULT_INTENT_KEYWORDS = {
    "schedule_meeting": ["schedule", "meeting", "calendar", "book a call", "set up a call"],
    "send_email": ["email", "e-mail", "mail"],
    "create_reminder": ["remind", "reminder"],
    "create_task": ["task", "todo", "to-do", "action item", "assign"],
}


@dataclass
class LLMConfig:
    """LLM provider configuration for the refinement step"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    timeout: float = 30.0


@dataclass
class CaptureConfig:
    """Chart capture (visualization pipeline) configuration"""
    start_phrases: List[str] = field(default_factory=lambda: list(DEFAULT_START_PHRASES))
    stop_phrases: List[str] = field(default_factory=lambda: list(DEFAULT_STOP_PHRASES))
    wake_phrases: List[str] = field(default_factory=lambda: list(DEFAULT_WAKE_PHRASES))
    intent_phrases: List[str] = field(default_factory=lambda: list(DEFAULT_INTENT_PHRASES))
    phrases_path: str = ""
    min_confidence: float = 0.5
    max_capture_chars: int = 8000
    max_capture_seconds: float = 900.0  # 0 disables the age limit


@dataclass
class AutomationConfig:
    """Voice command (automation pipeline) configuration"""
    wake_token: str = "hey"
    assistant_token: str = "neuro"
    end_marker: str = "over"
    filler_words: List[str] = field(default_factory=lambda: list(DEFAULT_FILLER_WORDS))
    intent_keywords: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_INTENT_KEYWORDS.items()}
    )
    min_confidence: float = 0.4
    max_command_chars: int = 2000
    max_command_seconds: float = 120.0  # 0 disables the age limit
    webhook_url: str = ""
    webhook_timeout: float = 10.0


@dataclass
class ServerConfig:
    """Ingestion server configuration"""
    port: int = 8090
    signing_secret: str = ""
    store_path: str = str(STORE_PATH)
    conversation_retention_seconds: float = 3600.0


@dataclass
class NeuroCueConfig:
    """Main NeuroCue configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
    )


def _parse_capture_config(data: dict) -> CaptureConfig:
    """Parse capture section from config dict"""
    capture_data = data.get("capture", {})
    defaults = CaptureConfig()
    return CaptureConfig(
        start_phrases=capture_data.get("start_phrases", defaults.start_phrases),
        stop_phrases=capture_data.get("stop_phrases", defaults.stop_phrases),
        wake_phrases=capture_data.get("wake_phrases", defaults.wake_phrases),
        intent_phrases=capture_data.get("intent_phrases", defaults.intent_phrases),
        phrases_path=capture_data.get("phrases_path", ""),
        min_confidence=float(capture_data.get("min_confidence", defaults.min_confidence)),
        max_capture_chars=int(capture_data.get("max_capture_chars", defaults.max_capture_chars)),
        max_capture_seconds=float(capture_data.get("max_capture_seconds", defaults.max_capture_seconds)),
    )


def _parse_automation_config(data: dict) -> AutomationConfig:
    """Parse automation section from config dict"""
    automation_data = data.get("automation", {})
    defaults = AutomationConfig()
    return AutomationConfig(
        wake_token=automation_data.get("wake_token", defaults.wake_token),
        assistant_token=automation_data.get("assistant_token", defaults.assistant_token),
        end_marker=automation_data.get("end_marker", defaults.end_marker),
        filler_words=automation_data.get("filler_words", defaults.filler_words),
        intent_keywords=automation_data.get("intent_keywords", defaults.intent_keywords),
        min_confidence=float(automation_data.get("min_confidence", defaults.min_confidence)),
        max_command_chars=int(automation_data.get("max_command_chars", defaults.max_command_chars)),
        max_command_seconds=float(automation_data.get("max_command_seconds", defaults.max_command_seconds)),
        webhook_url=automation_data.get("webhook_url", ""),
        webhook_timeout=float(automation_data.get("webhook_timeout", defaults.webhook_timeout)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        port=int(server_data.get("port", 8090)),
        signing_secret=server_data.get("signing_secret", ""),
        store_path=server_data.get("store_path", str(STORE_PATH)),
        conversation_retention_seconds=float(server_data.get("conversation_retention_seconds", 3600.0)),
    )


def load_config(config_path: Path = None) -> NeuroCueConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.neurocue/config.json)
    3. Default values
    """
    config = NeuroCueConfig()
    path = config_path or CONFIG_PATH

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.capture = _parse_capture_config(data)
            config.automation = _parse_automation_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", path, e)

    if os.getenv("NEUROCUE_PORT"):
        config.server.port = int(os.getenv("NEUROCUE_PORT"))
    if os.getenv("NEUROCUE_SIGNING_SECRET"):
        config.server.signing_secret = os.getenv("NEUROCUE_SIGNING_SECRET")
    if os.getenv("NEUROCUE_STORE_PATH"):
        config.server.store_path = os.getenv("NEUROCUE_STORE_PATH")
    if os.getenv("NEUROCUE_PHRASES_PATH"):
        config.capture.phrases_path = os.getenv("NEUROCUE_PHRASES_PATH")
    if os.getenv("NEUROCUE_VISUAL_MIN_CONFIDENCE"):
        config.capture.min_confidence = float(os.getenv("NEUROCUE_VISUAL_MIN_CONFIDENCE"))
    if os.getenv("NEUROCUE_AUTOMATION_MIN_CONFIDENCE"):
        config.automation.min_confidence = float(os.getenv("NEUROCUE_AUTOMATION_MIN_CONFIDENCE"))
    if os.getenv("NEUROCUE_WEBHOOK_URL"):
        config.automation.webhook_url = os.getenv("NEUROCUE_WEBHOOK_URL")

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "NEUROCUE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: NeuroCueConfig, config_path: Path = None) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    path = config_path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "timeout": config.llm.timeout,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "capture": {
            "start_phrases": config.capture.start_phrases,
            "stop_phrases": config.capture.stop_phrases,
            "wake_phrases": config.capture.wake_phrases,
            "intent_phrases": config.capture.intent_phrases,
            "phrases_path": config.capture.phrases_path,
            "min_confidence": config.capture.min_confidence,
            "max_capture_chars": config.capture.max_capture_chars,
            "max_capture_seconds": config.capture.max_capture_seconds,
        },
        "automation": {
            "wake_token": config.automation.wake_token,
            "assistant_token": config.automation.assistant_token,
            "end_marker": config.automation.end_marker,
            "filler_words": config.automation.filler_words,
            "intent_keywords": config.automation.intent_keywords,
            "min_confidence": config.automation.min_confidence,
            "max_command_chars": config.automation.max_command_chars,
            "max_command_seconds": config.automation.max_command_seconds,
            "webhook_url": config.automation.webhook_url,
            "webhook_timeout": config.automation.webhook_timeout,
        },
        "server": {
            "port": config.server.port,
            "signing_secret": config.server.signing_secret,
            "store_path": config.server.store_path,
            "conversation_retention_seconds": config.server.conversation_retention_seconds,
        },
    }

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    path.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
