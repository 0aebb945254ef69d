"""Configuration management for Marquee.

Three config sections:
- api: search/discovery API endpoint, timeouts, retry and concurrency caps
- planner: endpoint scoring weights and coverage thresholds
- execution: result-count thresholds, enrichment sample size, quality floors

Config resolution order (highest priority first):
1. Programmatic (MarqueeConfig constructed in code)
2. Environment variables (MARQUEE_MAX_CONCURRENCY, MARQUEE_MIN_RESULTS, etc.)
3. Config file (~/.config/marquee/config.json, managed by `marquee config`)
4. Hardcoded defaults

API keys are ALWAYS from env vars, never stored in the config file.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv


logger = logging.getLogger(__name__)


# =============================================================================
# Config file location
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "marquee"
CONFIG_FILE = CONFIG_DIR / "config.json"


# =============================================================================
# Config dataclasses
# =============================================================================


@dataclass
class ApiConfig:
    """Search/discovery API settings.

    - max_concurrency caps both entity lookups and enrichment fetches
    - max_retries applies to transient failures only (timeouts, 429, 5xx)
    """

    base_url: str = "https://api.themoviedb.org/3"
    api_key_env: str = "TMDB_API_KEY"
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    max_concurrency: int = 8
    max_pages: int = 1
    language: str = "en-US"


@dataclass
class PlannerConfig:
    """Endpoint scoring: score = w1*semantic + w2*coverage + w3*prior."""

    semantic_weight: float = 0.6
    coverage_weight: float = 0.3
    performance_weight: float = 0.1
    min_coverage: float = 0.5
    tie_margin: float = 0.1
    min_entity_confidence: float = 0.0


@dataclass
class ExecutionConfig:
    """Result validation and relaxation settings."""

    min_results: int = 1
    enrichment_sample_size: int = 20
    quality_min_votes: int = 200
    max_entries: int = 20
    overrides_path: str = ""  # optional YAML override table for name lookups


# =============================================================================
# Main config class
# =============================================================================


@dataclass
class MarqueeConfig:
    """Top-level marquee configuration.

    Construct programmatically for package use, or load from config file for CLI use.

    Examples:
        # Package use: no files needed
        config = MarqueeConfig(execution=ExecutionConfig(min_results=5))

        # CLI use: loads from ~/.config/marquee/config.json
        config = MarqueeConfig.load()
    """

    api: ApiConfig = field(default_factory=ApiConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    @classmethod
    def load(cls) -> "MarqueeConfig":
        """Load config from file + env vars.

        Priority: env var values > config.json values > defaults.
        """
        config = cls()

        # Layer 1: Load from config file if it exists
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                _apply_dict(config, data)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Failed to load config from %s: %s", CONFIG_FILE, exc)

        # Layer 2: Env var overrides
        _ensure_dotenv()
        if val := os.environ.get("MARQUEE_API_BASE_URL"):
            config.api.base_url = val
        for env_name, section, key in _ENV_OVERRIDES:
            if val := os.environ.get(env_name):
                target = getattr(config, section)
                try:
                    setattr(target, key, _coerce(target, key, val))
                except ValueError:
                    logger.warning("Invalid %s=%r, ignoring", env_name, val)

        return config

    def save(self) -> None:
        """Save config to ~/.config/marquee/config.json."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for display."""
        return {
            "api": asdict(self.api),
            "planner": asdict(self.planner),
            "execution": asdict(self.execution),
        }

    def set_value(self, dotted_key: str, value: str) -> None:
        """Set a `section.key` value from its string form.

        Raises:
            KeyError: Unknown section or key
            ValueError: Value cannot be coerced to the field's type
        """
        section, _, key = dotted_key.partition(".")
        target = getattr(self, section, None) if section in _SECTIONS else None
        if target is None or key not in {f.name for f in fields(target)}:
            raise KeyError(dotted_key)
        setattr(target, key, _coerce(target, key, value))

    @property
    def api_key(self) -> str:
        return get_api_key(self.api.api_key_env)


_SECTIONS = ("api", "planner", "execution")

_ENV_OVERRIDES = (
    ("MARQUEE_TIMEOUT", "api", "timeout"),
    ("MARQUEE_MAX_RETRIES", "api", "max_retries"),
    ("MARQUEE_MAX_CONCURRENCY", "api", "max_concurrency"),
    ("MARQUEE_MAX_PAGES", "api", "max_pages"),
    ("MARQUEE_MIN_COVERAGE", "planner", "min_coverage"),
    ("MARQUEE_MIN_RESULTS", "execution", "min_results"),
    ("MARQUEE_ENRICHMENT_SAMPLE_SIZE", "execution", "enrichment_sample_size"),
    ("MARQUEE_OVERRIDES_PATH", "execution", "overrides_path"),
)


def _coerce(target: Any, key: str, value: Any) -> Any:
    """Coerce a raw value to the type of the dataclass field's default."""
    current = getattr(target, key)
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return str(value)


# =============================================================================
# Config dict application
# =============================================================================


def _apply_dict(config: MarqueeConfig, data: dict) -> None:
    """Apply a dict of values onto a MarqueeConfig."""
    for section in _SECTIONS:
        values = data.get(section)
        if not isinstance(values, dict):
            continue
        target = getattr(config, section)
        for k, v in values.items():
            if hasattr(target, k):
                try:
                    setattr(target, k, _coerce(target, k, v))
                except ValueError:
                    logger.warning("Invalid config value %s.%s=%r, ignoring", section, k, v)


# =============================================================================
# API key resolution
# =============================================================================

_dotenv_loaded = False


def _ensure_dotenv() -> None:
    """Load .env file into os.environ if not already loaded."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        _dotenv_loaded = True
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path=dotenv_path, override=False)


def get_api_key(env_var: str = "TMDB_API_KEY") -> str:
    """Get the search API key from the environment (.env honored).

    Returns empty string if not found.
    """
    _ensure_dotenv()
    return os.environ.get(env_var, "")


# =============================================================================
# Global config singleton
# =============================================================================

_config: MarqueeConfig | None = None


def get_config() -> MarqueeConfig:
    """Get the global MarqueeConfig instance.

    First call loads from file + env vars. Subsequent calls return cached instance.
    Use configure() to replace the global config programmatically.
    """
    global _config
    if _config is None:
        _config = MarqueeConfig.load()
    return _config


def configure(config: MarqueeConfig) -> None:
    """Set the global MarqueeConfig programmatically.

    Use this when marquee is used as a package:
        from marquee.config import configure, MarqueeConfig, ExecutionConfig
        configure(MarqueeConfig(execution=ExecutionConfig(min_results=3)))
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global config (forces reload on next get_config())."""
    global _config
    _config = None
