from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml


OUTPUT_FORMATS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class Settings:
    format: str = "text"
    log_level: str = "WARNING"
    # Report edges to unknown items as validation errors instead of dropping them.
    strict_dangling: bool = False


DEFAULT_SETTINGS = Settings()


class SettingsError(ValueError):
    pass


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Load CLI settings overrides from a YAML file.

    Format:
      format: text|json
      log_level: DEBUG|INFO|WARNING|ERROR
      strict_dangling: true|false

    Returns only the keys present in the file, validated.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SettingsError("settings file must be a mapping of key -> value")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k == "format":
            if v not in OUTPUT_FORMATS:
                raise SettingsError(f"format must be one of {list(OUTPUT_FORMATS)}")
            out[k] = v
        elif k == "log_level":
            if not isinstance(v, str) or v.upper() not in LOG_LEVELS:
                raise SettingsError(f"log_level must be one of {list(LOG_LEVELS)}")
            out[k] = v.upper()
        elif k == "strict_dangling":
            if not isinstance(v, bool):
                raise SettingsError("strict_dangling must be a boolean")
            out[k] = v
        else:
            raise SettingsError(f"unknown settings key: {k}")
    return out


def load_and_merge(settings_file: str | None) -> Settings:
    """DEFAULT_SETTINGS with the optional file's keys replacing the defaults."""
    if not settings_file:
        return DEFAULT_SETTINGS
    return replace(DEFAULT_SETTINGS, **load_settings_file(settings_file))
