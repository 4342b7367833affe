"""
Configuration management for summarization stores.

The configuration is stored as a TOML file in the store directory.
It holds the summarization settings (window size, archive thresholds,
entry positions, message cleanup rules, prompt overrides) and which
generation providers to use.

Numeric settings are clamped to their allowed range on load, and values
that cannot be coerced fall back to their defaults, so a hand-edited
file never stops the summarizer from starting.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

logger = logging.getLogger(__name__)


CONFIG_FILENAME = "hilo.toml"
CONFIG_VERSION = 1

DEFAULT_NO_MERGE_MARKER = "<|no-trans|>"

# (min, max) for every clamped numeric setting
SETTING_LIMITS: dict[str, tuple[int, int]] = {
    "visible_turns": (1, 100),
    "check_interval": (5, 100),
    "volume_token_threshold": (1000, 50000),
    "task_cooldown": (0, 300),
    "max_tokens": (0, 128000),
    "ignore_turns": (0, 1000),
    "mini_summary_depth": (0, 99999),
    "volume_summary_depth": (0, 99999),
    "mini_summary_start_order": (0, 99999),
    "volume_start_order": (0, 99999),
}


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class CleanupRule:
    """A regex substitution applied to a turn before it is summarized.

    Flags use the familiar single-letter form: ``g`` replaces every match
    (otherwise only the first), ``i``/``m``/``s`` map to the re module flags.
    """
    pattern: str
    flags: str = "g"
    replacement: str = ""


@dataclass
class CaptureTag:
    """Delimiters around the part of a turn worth summarizing."""
    start_tag: str
    end_tag: str


@dataclass
class PromptOverrides:
    """User-supplied system prompts. Empty string means use the default."""
    mini_summary_system: str = ""
    volume_summary_system: str = ""
    volume_completion_check_system: str = ""


@dataclass
class Settings:
    """Summarization behaviour settings."""
    visible_turns: int = 20
    check_interval: int = 20
    volume_token_threshold: int = 8000
    auto_mini_summary: bool = True
    auto_volume_summary: bool = True
    deferred_summary: bool = False
    mini_summary_depth: int = 9999
    volume_summary_depth: int = 9999
    mini_summary_start_order: int = 10000
    volume_start_order: int = 100
    ignore_turns: int = 0
    task_cooldown: int = 5
    max_tokens: int = 0
    no_merge_marker: bool = False
    no_merge_marker_value: str = DEFAULT_NO_MERGE_MARKER
    cleanup: list[CleanupRule] = field(default_factory=list)
    capture_tags: list[CaptureTag] = field(default_factory=list)
    prompts: PromptOverrides = field(default_factory=PromptOverrides)

    def mini_summary_order(self, turn_id: int) -> int:
        """Entry order for a turn's mini-summary; later turns sort later."""
        return self.mini_summary_start_order + turn_id

    def volume_order(self, volume_number: int) -> int:
        """Entry order for a volume summary."""
        return self.volume_start_order + volume_number


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    settings: Settings = field(default_factory=Settings)

    # Provider configurations
    generation: ProviderConfig = field(default_factory=lambda: ProviderConfig("passthrough"))
    fallback: Optional[ProviderConfig] = None

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Resolve the store directory: HILO_STORE_PATH, else ~/.hilo."""
    env_path = os.environ.get("HILO_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".hilo"


# -----------------------------------------------------------------------------
# Settings parsing
# -----------------------------------------------------------------------------

def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _coerce_int(key: str, value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r (using %d)", key, value, default)
        return default


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(value, int):
        return bool(value)
    return default


def parse_settings(data: dict) -> Settings:
    """
    Build Settings from a raw dict, applying defaults and clamping.

    Unknown keys are ignored. Cleanup rules without a pattern and capture
    tags missing either delimiter are dropped.
    """
    defaults = Settings()
    kwargs: dict[str, Any] = {}

    for f in fields(Settings):
        if f.name in ("cleanup", "capture_tags", "prompts") or f.name not in data:
            continue
        default = getattr(defaults, f.name)
        value = data[f.name]
        if isinstance(default, bool):
            kwargs[f.name] = _coerce_bool(value, default)
        elif isinstance(default, int):
            number = _coerce_int(f.name, value, default)
            if f.name in SETTING_LIMITS:
                low, high = SETTING_LIMITS[f.name]
                number = _clamp(number, low, high)
            kwargs[f.name] = number
        else:
            kwargs[f.name] = str(value)

    kwargs["cleanup"] = [
        CleanupRule(
            pattern=str(rule["pattern"]),
            flags=str(rule.get("flags", "g")),
            replacement=str(rule.get("replacement", "")),
        )
        for rule in data.get("cleanup", [])
        if isinstance(rule, dict) and rule.get("pattern")
    ]
    kwargs["capture_tags"] = [
        CaptureTag(start_tag=str(tag["start_tag"]), end_tag=str(tag["end_tag"]))
        for tag in data.get("capture_tags", [])
        if isinstance(tag, dict) and tag.get("start_tag") and tag.get("end_tag")
    ]
    prompts = data.get("prompts", {}) or {}
    kwargs["prompts"] = PromptOverrides(
        mini_summary_system=str(prompts.get("mini_summary_system", "")),
        volume_summary_system=str(prompts.get("volume_summary_system", "")),
        volume_completion_check_system=str(prompts.get("volume_completion_check_system", "")),
    )
    return Settings(**kwargs)


def settings_to_dict(settings: Settings) -> dict:
    """Serialize Settings into the TOML-ready structure parse_settings reads."""
    data: dict[str, Any] = {}
    for f in fields(Settings):
        if f.name in ("cleanup", "capture_tags", "prompts"):
            continue
        data[f.name] = getattr(settings, f.name)
    data["prompts"] = {
        "mini_summary_system": settings.prompts.mini_summary_system,
        "volume_summary_system": settings.prompts.volume_summary_system,
        "volume_completion_check_system": settings.prompts.volume_completion_check_system,
    }
    data["cleanup"] = [
        {"pattern": r.pattern, "flags": r.flags, "replacement": r.replacement}
        for r in settings.cleanup
    ]
    data["capture_tags"] = [
        {"start_tag": t.start_tag, "end_tag": t.end_tag}
        for t in settings.capture_tags
    ]
    return data


# -----------------------------------------------------------------------------
# Provider detection
# -----------------------------------------------------------------------------

def detect_default_providers() -> dict[str, Optional[ProviderConfig]]:
    """
    Detect the best default generation provider for the current environment.

    Priority:
    1. Anthropic (if ANTHROPIC_API_KEY is set)
    2. OpenAI (if HILO_OPENAI_API_KEY or OPENAI_API_KEY is set)
    3. Fallback: passthrough (no LLM; summaries are truncated text)

    Returns provider configs for: generation, fallback
    """
    has_anthropic_key = bool(os.environ.get("ANTHROPIC_API_KEY"))
    has_openai_key = bool(
        os.environ.get("HILO_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )

    if has_anthropic_key:
        generation = ProviderConfig("anthropic")
    elif has_openai_key:
        generation = ProviderConfig("openai")
    else:
        generation = ProviderConfig("passthrough")

    # With both keys available, the second one backs up the first
    fallback = None
    if has_anthropic_key and has_openai_key:
        fallback = ProviderConfig("openai")

    return {"generation": generation, "fallback": fallback}


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    providers = detect_default_providers()

    return StoreConfig(
        path=store_path,
        generation=providers["generation"],
        fallback=providers["fallback"],
    )


# -----------------------------------------------------------------------------
# Load / save
# -----------------------------------------------------------------------------

def _parse_provider(section: dict) -> ProviderConfig:
    return ProviderConfig(
        name=section.get("name", ""),
        params={k: v for k, v in section.items() if k not in ("name", "fallback")},
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    generation_section = data.get("generation", {"name": "passthrough"})
    fallback_section = generation_section.get("fallback")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        settings=parse_settings(data.get("settings", {})),
        generation=_parse_provider(generation_section),
        fallback=_parse_provider(fallback_section) if fallback_section else None,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update(p.params)
        return d

    generation = provider_to_dict(config.generation)
    if config.fallback is not None:
        generation["fallback"] = provider_to_dict(config.fallback)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "settings": settings_to_dict(config.settings),
        "generation": generation,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
