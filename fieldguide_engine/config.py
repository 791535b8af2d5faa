from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .utils import load_json

DEFAULTS: dict[str, dict[str, Any]] = {
    "matching": {"edge_threshold": 10, "accept_threshold": 0.05},
    "retry": {"max_attempts": 3, "base_delay_s": 5.0, "max_delay_s": 60.0},
    "rate_limit": {"interval_s": 2.0},
    "recognition": {
        "backend": "gemini",
        "model": "gemini-2.0-flash",
        "max_attempts": 3,
        "rate_limit_base_s": 10.0,
        "backoff_base_s": 1.0,
        "lang": "ja,en",
    },
    "output": {"save_crops": True},
}


@dataclass(frozen=True)
class EngineConfig:
    matching: dict[str, Any]
    retry: dict[str, Any]
    rate_limit: dict[str, Any]
    recognition: dict[str, Any]
    output: dict[str, Any]


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    merged = dict(DEFAULTS[name])
    merged.update(data.get(name, {}) or {})
    return merged


def load_config(config_path: str | Path | None = None) -> EngineConfig:
    """Load a JSON config file; sections and keys it omits keep their defaults."""
    data = load_json(config_path) if config_path else {}
    if not isinstance(data, dict):
        raise ValueError(f"config must be a JSON object: {config_path}")
    return EngineConfig(
        matching=_section(data, "matching"),
        retry=_section(data, "retry"),
        rate_limit=_section(data, "rate_limit"),
        recognition=_section(data, "recognition"),
        output=_section(data, "output"),
    )
