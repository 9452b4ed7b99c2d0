"""Runtime settings for wipi."""
from __future__ import annotations

import json
import math
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from .control import DEFAULT_COMMAND_TIMEOUT, DEFAULT_WPA_CLI
from .status import DEFAULT_PING_TARGET

_ENV_FIELDS = {
    "WIPI_INTERFACE": "interface",
    "WIPI_PING_TARGET": "ping_target",
    "WIPI_WPA_CLI": "wpa_cli",
    "WIPI_COMMAND_TIMEOUT": "command_timeout",
    "WIPI_EVENT_LOG": "event_log_path",
}


@dataclass(frozen=True, slots=True)
class WipiSettings:
    """Values needed to wire the adapters to a host."""

    interface: str = "wlan0"
    ping_target: str = DEFAULT_PING_TARGET
    wpa_cli: str = DEFAULT_WPA_CLI
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    event_log_path: str | None = None

    def __post_init__(self) -> None:
        for name in ("interface", "ping_target", "wpa_cli"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
            object.__setattr__(self, name, value.strip())
        try:
            timeout = float(self.command_timeout)
        except (TypeError, ValueError) as exc:
            raise ValueError("command_timeout must be numeric") from exc
        if not math.isfinite(timeout) or timeout <= 0:
            raise ValueError("command_timeout must be a positive number")
        object.__setattr__(self, "command_timeout", timeout)
        log_path = self.event_log_path
        if isinstance(log_path, str):
            object.__setattr__(self, "event_log_path", log_path.strip() or None)
        elif log_path is not None:
            raise ValueError("event_log_path must be a string")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _read_file(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValueError(f"Unable to read settings file {path}: {exc}") from exc
    except ValueError as exc:
        raise ValueError(f"Settings file {path} is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Settings file {path} must contain a JSON object")
    known = {field.name for field in fields(WipiSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(unknown)}")
    return payload


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> WipiSettings:
    """Build settings from defaults, an optional JSON file, then ``WIPI_*`` variables."""

    values: dict[str, Any] = {}
    if path is not None:
        values.update(_read_file(Path(path)))
    environ = os.environ if env is None else env
    for variable, name in _ENV_FIELDS.items():
        raw = environ.get(variable)
        if raw is None or not raw.strip():
            continue
        values[name] = raw.strip()
    return WipiSettings(**values)


__all__ = ["WipiSettings", "load_settings"]
