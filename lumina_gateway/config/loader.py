"""
Configuration management and loading.

Handles gateway settings, YAML overrides and environment variables.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml


class SafetyMode(Enum):
    """What to do when generated content trips the strict lexicon."""
    SANITIZE = "sanitize"
    BLOCK = "block"


@dataclass(frozen=True)
class RateWindow:
    """At most ``max_requests`` generation requests per ``seconds`` per caller."""
    name: str
    seconds: int
    max_requests: int

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("rate window name cannot be empty")
        if self.seconds <= 0:
            raise ValueError(f"rate window '{self.name}': seconds must be > 0")
        if self.max_requests <= 0:
            raise ValueError(f"rate window '{self.name}': max_requests must be > 0")


DEFAULT_RATE_WINDOWS: Tuple[RateWindow, ...] = (
    RateWindow(name="burst", seconds=60, max_requests=5),
    RateWindow(name="hourly", seconds=3600, max_requests=60),
)


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable configuration threaded into the orchestrator."""
    daily_quota_limit: int = 999_999_999
    atomic_quota_increment: bool = False
    cache_version: str = "v2"
    max_attempts: int = 3
    media_max_attempts: int = 1
    rate_limited_base_ms: int = 2000
    overloaded_base_ms: int = 1000
    invocation_deadline_seconds: float = 60.0
    discovery_size: int = 5
    mix_fresh_count: int = 2
    full_hit_probability: float = 0.3
    rate_limit_windows: Tuple[RateWindow, ...] = DEFAULT_RATE_WINDOWS
    safety_mode: SafetyMode = SafetyMode.SANITIZE
    extra_strict_terms: FrozenSet[str] = field(default_factory=frozenset)
    text_model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    audio_model: str = "gpt-4o-mini-tts"
    audio_voice: str = "alloy"
    temperature: float = 0.4
    placeholder_image_url: str = "https://picsum.photos/800/600?grayscale&blur=2"
    db_path: str = "lumina_gateway.db"

    def __post_init__(self):
        """Validate limits and the retry budget against the deadline."""
        if self.daily_quota_limit <= 0:
            raise ValueError("daily_quota_limit must be > 0")
        if not self.cache_version or not self.cache_version.strip():
            raise ValueError("cache_version cannot be empty")
        if self.max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")
        if self.media_max_attempts < 0:
            raise ValueError("media_max_attempts cannot be negative")
        if self.rate_limited_base_ms <= 0 or self.overloaded_base_ms <= 0:
            raise ValueError("retry base delays must be > 0")
        if self.invocation_deadline_seconds <= 0:
            raise ValueError("invocation_deadline_seconds must be > 0")
        if self.discovery_size <= 0:
            raise ValueError("discovery_size must be > 0")
        if not 0 < self.mix_fresh_count <= self.discovery_size:
            raise ValueError("mix_fresh_count must be between 1 and discovery_size")
        if not 0.0 <= self.full_hit_probability <= 1.0:
            raise ValueError("full_hit_probability must be within [0, 1]")
        names = [window.name for window in self.rate_limit_windows]
        if len(set(names)) != len(names):
            raise ValueError("rate window names must be unique")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be within [0, 2]")
        if self.max_backoff_seconds >= self.invocation_deadline_seconds:
            raise ValueError(
                f"worst-case retry backoff {self.max_backoff_seconds:.1f}s must be below "
                f"the invocation deadline {self.invocation_deadline_seconds:.1f}s"
            )

    @property
    def max_backoff_seconds(self) -> float:
        """Cumulative sleep of a fully exhausted rate-limited retry loop."""
        base = max(self.rate_limited_base_ms, self.overloaded_base_ms)
        # Delays happen between attempts only, so attempts - 1 of them.
        sleeps = max(self.max_attempts - 1, 0)
        return sum(base * (2 ** attempt) for attempt in range(sleeps)) / 1000.0


# YAML section -> {yaml key: GatewayConfig field}
_SECTIONS: Dict[str, Dict[str, str]] = {
    "quota": {
        "daily_limit": "daily_quota_limit",
        "atomic_increment": "atomic_quota_increment",
    },
    "cache": {
        "version": "cache_version",
    },
    "retry": {
        "max_attempts": "max_attempts",
        "media_max_attempts": "media_max_attempts",
        "rate_limited_base_ms": "rate_limited_base_ms",
        "overloaded_base_ms": "overloaded_base_ms",
    },
    "discovery": {
        "size": "discovery_size",
        "fresh_count": "mix_fresh_count",
        "full_hit_probability": "full_hit_probability",
    },
    "rate_limit": {
        "windows": "rate_limit_windows",
    },
    "safety": {
        "mode": "safety_mode",
        "extra_strict_terms": "extra_strict_terms",
    },
    "provider": {
        "text_model": "text_model",
        "image_model": "image_model",
        "audio_model": "audio_model",
        "audio_voice": "audio_voice",
        "temperature": "temperature",
        "placeholder_image_url": "placeholder_image_url",
    },
    "storage": {
        "db_path": "db_path",
    },
}

_SCALARS = {"deadline_seconds": "invocation_deadline_seconds"}


def load_gateway_config(path: str, base: Optional[GatewayConfig] = None) -> GatewayConfig:
    """Load and validate gateway configuration from a YAML file.

    Values not present in the file keep the defaults of ``base`` (or of
    ``GatewayConfig()``). Unknown sections and keys are rejected so a typo
    never silently falls back to a default.

    Args:
        path: Path to YAML configuration file
        base: Optional configuration to layer the file on top of

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = set(_SECTIONS) | set(_SCALARS)
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    overrides: Dict[str, Any] = {}
    for key, field_name in _SCALARS.items():
        if key in raw_config:
            overrides[field_name] = raw_config[key]

    for section, mapping in _SECTIONS.items():
        if section not in raw_config:
            continue
        section_data = raw_config[section]
        if not isinstance(section_data, dict):
            raise ValueError(f"'{section}' must be a dictionary")
        unknown = set(section_data.keys()) - set(mapping)
        if unknown:
            raise ValueError(f"Unknown keys in {section}: {unknown}")
        for key, value in section_data.items():
            overrides[mapping[key]] = value

    return replace(base or GatewayConfig(), **_coerce(overrides))


def _coerce(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Convert raw YAML values to the types GatewayConfig declares.

    Args:
        overrides: Field name to raw value

    Returns:
        Field name to typed value

    Raises:
        ValueError: If a value has the wrong type
    """
    types = {f.name: f.type for f in fields(GatewayConfig)}
    coerced: Dict[str, Any] = {}
    for name, value in overrides.items():
        expected = types[name]
        if name == "safety_mode":
            if not isinstance(value, str):
                raise ValueError("'safety.mode' must be a string")
            try:
                coerced[name] = SafetyMode(value.lower())
            except ValueError:
                valid = [mode.value for mode in SafetyMode]
                raise ValueError(f"'safety.mode' must be one of: {valid}")
        elif name == "rate_limit_windows":
            coerced[name] = _coerce_windows(value)
        elif name == "extra_strict_terms":
            if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
                raise ValueError("'safety.extra_strict_terms' must be a list of strings")
            coerced[name] = frozenset(t.strip().lower() for t in value if t.strip())
        elif expected in (bool, "bool"):
            if not isinstance(value, bool):
                raise ValueError(f"'{name}' must be a boolean")
            coerced[name] = value
        elif expected in (int, "int"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{name}' must be an integer")
            coerced[name] = value
        elif expected in (float, "float"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{name}' must be a number")
            coerced[name] = float(value)
        else:
            if not isinstance(value, str):
                raise ValueError(f"'{name}' must be a string")
            coerced[name] = value
    return coerced


def _coerce_windows(value: Any) -> Tuple[RateWindow, ...]:
    """Build rate windows from ``[{name, seconds, max_requests}, ...]``.

    An empty list turns the request limiter off.
    """
    if not isinstance(value, list):
        raise ValueError("'rate_limit.windows' must be a list")
    allowed = {"name", "seconds", "max_requests"}
    windows: List[RateWindow] = []
    for raw in value:
        if not isinstance(raw, dict):
            raise ValueError("'rate_limit.windows' entries must be dictionaries")
        unknown = set(raw.keys()) - allowed
        if unknown:
            raise ValueError(f"Unknown keys in rate_limit.windows: {unknown}")
        missing = allowed - set(raw.keys())
        if missing:
            raise ValueError(f"Missing keys in rate_limit.windows: {missing}")
        if not isinstance(raw["name"], str):
            raise ValueError("'rate_limit.windows.name' must be a string")
        for key in ("seconds", "max_requests"):
            if isinstance(raw[key], bool) or not isinstance(raw[key], int):
                raise ValueError(f"'rate_limit.windows.{key}' must be an integer")
        windows.append(RateWindow(name=raw["name"], seconds=raw["seconds"], max_requests=raw["max_requests"]))
    return tuple(windows)
