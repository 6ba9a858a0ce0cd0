from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/contextkeeper/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "storage_root": "CONTEXTKEEPER_STORAGE_ROOT",
    "relevance_threshold": "CONTEXTKEEPER_RELEVANCE_THRESHOLD",
    "max_context_items": "CONTEXTKEEPER_MAX_CONTEXT_ITEMS",
    "security_filter_enabled": "CONTEXTKEEPER_SECURITY_FILTER",
    "search_limit": "CONTEXTKEEPER_SEARCH_LIMIT",
    "decay_half_life_days": "CONTEXTKEEPER_DECAY_HALF_LIFE_DAYS",
    "autoload_enabled": "CONTEXTKEEPER_AUTOLOAD",
    "autoload_strategy": "CONTEXTKEEPER_AUTOLOAD_STRATEGY",
    "autoload_max_size_kb": "CONTEXTKEEPER_AUTOLOAD_MAX_SIZE_KB",
    "autoload_format_style": "CONTEXTKEEPER_AUTOLOAD_FORMAT",
    "autoload_priority_keywords": "CONTEXTKEEPER_AUTOLOAD_KEYWORDS",
    "hook_timeout_s": "CONTEXTKEEPER_HOOK_TIMEOUT_S",
    "log_level": "CONTEXTKEEPER_LOG_LEVEL",
    "log_path": "CONTEXTKEEPER_LOG",
}

AUTOLOAD_STRATEGIES = ("recent", "relevant", "smart", "custom")
FORMAT_STYLES = ("summary", "detailed", "minimal")
INCLUDE_TYPES = ("problems", "implementations", "decisions", "patterns")


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("CONTEXTKEEPER_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass(frozen=True, slots=True)
class ExtractionSettings:
    relevance_threshold: float = 0.5
    max_context_items: int = 50
    question_max_chars: int = 2000
    solution_max_chars: int = 2000
    implementation_max_chars: int = 1000
    decision_max_chars: int = 500
    min_pattern_frequency: int = 2
    pattern_examples_limit: int = 5
    security_filter_enabled: bool = True


@dataclass(frozen=True, slots=True)
class AutoLoadSettings:
    enabled: bool = True
    strategy: str = "smart"
    max_size_kb: float = 10.0
    item_count: int = 20
    time_window_days: int = 7
    min_relevance: float = 0.6
    priority_keywords: tuple[str, ...] = ()
    format_style: str = "summary"
    include_types: tuple[str, ...] = INCLUDE_TYPES

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_kb * 1024)


@dataclass
class ContextKeeperConfig:
    storage_root: str | None = None
    index_session_limit: int = 100
    index_top_tools: int = 5

    relevance_threshold: float = 0.5
    max_context_items: int = 50
    question_max_chars: int = 2000
    solution_max_chars: int = 2000
    implementation_max_chars: int = 1000
    decision_max_chars: int = 500
    min_pattern_frequency: int = 2
    pattern_examples_limit: int = 5
    security_filter_enabled: bool = True

    # Oversized transcripts keep the head and tail of the session only.
    large_transcript_bytes: int = 10 * 1024 * 1024
    memory_pressure_max_entries: int = 5000
    memory_pressure_head_ratio: float = 0.2

    search_limit: int = 10
    fetch_limit: int = 5
    fetch_min_relevance: float = 0.3
    decay_half_life_days: float = 60.0

    autoload_enabled: bool = True
    autoload_strategy: str = "smart"
    autoload_max_size_kb: float = 10.0
    autoload_item_count: int = 20
    autoload_time_window_days: int = 7
    autoload_min_relevance: float = 0.6
    autoload_priority_keywords: list[str] = field(default_factory=list)
    autoload_format_style: str = "summary"
    autoload_include_types: list[str] = field(default_factory=lambda: list(INCLUDE_TYPES))

    hook_timeout_s: float = 55.0
    log_level: str = "WARNING"
    log_path: str | None = None

    def extraction_settings(self) -> ExtractionSettings:
        return ExtractionSettings(
            relevance_threshold=self.relevance_threshold,
            max_context_items=self.max_context_items,
            question_max_chars=self.question_max_chars,
            solution_max_chars=self.solution_max_chars,
            implementation_max_chars=self.implementation_max_chars,
            decision_max_chars=self.decision_max_chars,
            min_pattern_frequency=self.min_pattern_frequency,
            pattern_examples_limit=self.pattern_examples_limit,
            security_filter_enabled=self.security_filter_enabled,
        )

    def autoload_settings(self) -> AutoLoadSettings:
        return AutoLoadSettings(
            enabled=self.autoload_enabled,
            strategy=self.autoload_strategy,
            max_size_kb=self.autoload_max_size_kb,
            item_count=self.autoload_item_count,
            time_window_days=self.autoload_time_window_days,
            min_relevance=self.autoload_min_relevance,
            priority_keywords=tuple(self.autoload_priority_keywords),
            format_style=self.autoload_format_style,
            include_types=tuple(self.autoload_include_types),
        )


_INT_KEYS = {
    "index_session_limit",
    "index_top_tools",
    "max_context_items",
    "question_max_chars",
    "solution_max_chars",
    "implementation_max_chars",
    "decision_max_chars",
    "min_pattern_frequency",
    "pattern_examples_limit",
    "large_transcript_bytes",
    "memory_pressure_max_entries",
    "search_limit",
    "fetch_limit",
    "autoload_item_count",
    "autoload_time_window_days",
}
_FLOAT_KEYS = {
    "relevance_threshold",
    "memory_pressure_head_ratio",
    "fetch_min_relevance",
    "decay_half_life_days",
    "autoload_max_size_kb",
    "autoload_min_relevance",
    "hook_timeout_s",
}
_BOOL_KEYS = {"security_filter_enabled", "autoload_enabled"}
_LIST_KEYS = {"autoload_priority_keywords", "autoload_include_types"}
_CHOICE_KEYS = {
    "autoload_strategy": AUTOLOAD_STRATEGIES,
    "autoload_format_style": FORMAT_STYLES,
}


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def _coerce_choice(value: object, default: str, *, key: str) -> str:
    choices = _CHOICE_KEYS[key]
    if isinstance(value, str) and value.strip().lower() in choices:
        return value.strip().lower()
    warnings.warn(f"Invalid choice for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _apply_value(cfg: ContextKeeperConfig, key: str, value: object) -> None:
    current = getattr(cfg, key)
    if key in _INT_KEYS:
        setattr(cfg, key, _parse_int(value, current, key=key))
    elif key in _FLOAT_KEYS:
        setattr(cfg, key, _parse_float(value, current, key=key))
    elif key in _BOOL_KEYS:
        setattr(cfg, key, _coerce_bool(value, current, key=key))
    elif key in _LIST_KEYS:
        parsed = _coerce_str_list(value, key=key)
        if parsed is not None:
            setattr(cfg, key, parsed)
    elif key in _CHOICE_KEYS:
        setattr(cfg, key, _coerce_choice(value, current, key=key))
    else:
        setattr(cfg, key, None if value is None else str(value))


def load_config(path: Path | None = None) -> ContextKeeperConfig:
    cfg = ContextKeeperConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: ContextKeeperConfig, data: dict[str, Any]) -> ContextKeeperConfig:
    known = {f.name for f in fields(cfg)}
    for key, value in data.items():
        if key not in known:
            continue
        _apply_value(cfg, key, value)
    return cfg


def _apply_env(cfg: ContextKeeperConfig) -> ContextKeeperConfig:
    for key, value in get_env_overrides().items():
        _apply_value(cfg, key, value)
    return cfg


def config_to_dict(cfg: ContextKeeperConfig) -> dict[str, Any]:
    return {f.name: getattr(cfg, f.name) for f in fields(cfg)}
