from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


DEFAULT_SUPPORTED_CHANNELS = ["print", "email", "fax", "portal"]
DEFAULT_MISSING_PLACEHOLDER = "[[MISSING: {name}]]"


@dataclass(slots=True)
class EngineSettings:
    data_call_timeout_seconds: float = 5.0
    data_call_max_retries: int = 2
    batch_workers: int = 8
    graph_cache_ttl_seconds: float = 300.0
    max_loop_items: int = 1000
    default_locale: str = "en-US"
    default_language: str = "en"
    default_variation: str = "default"
    supported_channels: list[str] = field(default_factory=lambda: list(DEFAULT_SUPPORTED_CHANNELS))
    missing_placeholder: str = DEFAULT_MISSING_PLACEHOLDER
    render_format: str = "html"
    fragment_separator: str = "\n"
    builtin_healthcare_rules: bool = False



def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default



def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_list(raw: str | None, default: list[str]) -> list[str]:
    if not raw:
        return list(default)
    parts = [part.strip().lower() for part in raw.split(",")]
    return [part for part in parts if part] or list(default)



def load_settings() -> EngineSettings:
    load_dotenv()

    render_format = os.getenv("LETTER_LOGIC_RENDER_FORMAT", "html").strip().lower()
    if render_format not in {"html", "text"}:
        render_format = "html"

    return EngineSettings(
        data_call_timeout_seconds=max(0.1, _get_float("LETTER_LOGIC_DATA_TIMEOUT_SECONDS", 5.0)),
        data_call_max_retries=max(0, _get_int("LETTER_LOGIC_DATA_MAX_RETRIES", 2)),
        batch_workers=max(1, _get_int("LETTER_LOGIC_BATCH_WORKERS", 8)),
        graph_cache_ttl_seconds=max(0.0, _get_float("LETTER_LOGIC_GRAPH_CACHE_TTL_SECONDS", 300.0)),
        max_loop_items=max(1, _get_int("LETTER_LOGIC_MAX_LOOP_ITEMS", 1000)),
        default_locale=os.getenv("LETTER_LOGIC_DEFAULT_LOCALE", "en-US"),
        default_language=os.getenv("LETTER_LOGIC_DEFAULT_LANGUAGE", "en"),
        default_variation=os.getenv("LETTER_LOGIC_DEFAULT_VARIATION", "default"),
        supported_channels=_split_list(
            os.getenv("LETTER_LOGIC_SUPPORTED_CHANNELS"),
            DEFAULT_SUPPORTED_CHANNELS,
        ),
        missing_placeholder=os.getenv("LETTER_LOGIC_MISSING_PLACEHOLDER", DEFAULT_MISSING_PLACEHOLDER),
        render_format=render_format,
        builtin_healthcare_rules=_get_bool("LETTER_LOGIC_BUILTIN_RULES", False),
    )
