from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


SETTINGS_KEY = "rustMacroExpand"

# User-facing option name -> Settings field.
OPTION_NAMES: dict[str, str] = {
    "displayCargoCommand": "display_cargo_command",
    "displayCargoCommandPath": "display_cargo_command_path",
    "displayTimestamp": "display_timestamp",
    "displayWarnings": "display_warnings",
    "notifyWarnings": "notify_warnings",
    "expandOnSave": "expand_on_save",
}


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    display_cargo_command: bool = True
    display_cargo_command_path: bool = True
    display_timestamp: bool = True
    display_warnings: bool = True
    notify_warnings: bool = False
    expand_on_save: bool = True

    def to_options(self) -> dict[str, bool]:
        return {opt: getattr(self, field) for opt, field in OPTION_NAMES.items()}


DEFAULT_SETTINGS = Settings()


def parse_settings(raw: Any) -> Settings:
    """Build Settings from a parsed YAML document.

    Accepts the options at top level or nested under ``rustMacroExpand``:

      rustMacroExpand:
        displayTimestamp: false
        expandOnSave: true

    Missing options keep their defaults.
    """
    if raw is None:
        return DEFAULT_SETTINGS
    if not isinstance(raw, dict):
        raise SettingsError("settings file must be a mapping of option -> bool")
    if SETTINGS_KEY in raw:
        raw = raw[SETTINGS_KEY]
        if raw is None:
            return DEFAULT_SETTINGS
        if not isinstance(raw, dict):
            raise SettingsError(f"'{SETTINGS_KEY}' must be a mapping of option -> bool")

    values: dict[str, bool] = {}
    for k, v in raw.items():
        if k not in OPTION_NAMES:
            raise SettingsError(
                f"unknown option: {k} (choose from: {', '.join(sorted(OPTION_NAMES))})"
            )
        if not isinstance(v, bool):
            raise SettingsError(f"option '{k}' must be true or false")
        values[OPTION_NAMES[k]] = v

    return Settings(**values)


def load_settings(path: str | Path | None) -> Settings:
    if not path:
        return DEFAULT_SETTINGS
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SettingsError(f"invalid YAML in {p}: {e}") from e
    return parse_settings(raw)
