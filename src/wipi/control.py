"""Adapter around the ``wpa_cli`` supplicant control client."""

from __future__ import annotations

import hashlib
import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Sequence


logger = logging.getLogger(__name__)

DEFAULT_WPA_CLI = "/sbin/wpa_cli"
DEFAULT_COMMAND_TIMEOUT = 15.0

OK_REPLY = "OK"


class WipiError(RuntimeError):
    """Base class for failures raised by the wireless management layer."""


class ControlClientError(WipiError):
    """Raised when a host or supplicant command cannot be executed."""


def run_command(args: Sequence[str], *, timeout: float = DEFAULT_COMMAND_TIMEOUT) -> str:
    """Run ``args`` and return its standard output.

    Every failure mode of the child process is converted into
    :class:`ControlClientError` so callers only need to handle one type.
    """

    try:
        completed = subprocess.run(
            list(args),
            check=True,
            capture_output=True,
            # iwconfig and scan_results echo raw SSID bytes.
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as exc:  # pragma: no cover - environment specific
        raise ControlClientError(f"{args[0]} command unavailable") from exc
    except subprocess.TimeoutExpired as exc:  # pragma: no cover - environment specific
        raise ControlClientError(f"{args[0]} command timed out") from exc
    except subprocess.CalledProcessError as exc:
        error_output = (exc.stderr or "").strip() or (exc.stdout or "").strip() or str(exc)
        raise ControlClientError(error_output) from exc
    except OSError as exc:
        raise ControlClientError(f"{args[0]} could not be started: {exc}") from exc
    return completed.stdout


def is_ok(reply: str | None) -> bool:
    return isinstance(reply, str) and reply.strip() == OK_REPLY


def derive_psk(ssid: str, passphrase: str) -> str:
    """Return the 256-bit hex PSK ``wpa_passphrase`` would emit for ``ssid``."""

    raw = hashlib.pbkdf2_hmac(
        "sha1",
        passphrase.encode("utf-8"),
        ssid.encode("utf-8"),
        4096,
        32,
    )
    return raw.hex()


class EntryStatus(str, Enum):
    """Flag state of a network block in the credential store."""

    CURRENT = "CURRENT"
    DISABLED = "DISABLED"
    NONE = "NONE"


@dataclass(frozen=True, slots=True)
class NetworkConfigEntry:
    """One network block as reported by ``list_networks``."""

    network_id: int
    ssid: str
    bssid: str = "any"
    status: EntryStatus = EntryStatus.NONE

    def to_dict(self) -> dict[str, object]:
        return {
            "network_id": self.network_id,
            "ssid": self.ssid,
            "bssid": self.bssid,
            "status": self.status.value,
        }


def _split_table(output: str) -> list[list[str]]:
    """Split tab separated ``wpa_cli`` tables, dropping the header line."""

    rows: list[list[str]] = []
    lines = output.splitlines()
    for index, line in enumerate(lines):
        if index == 0 and "/" in line:
            # "network id / ssid / bssid / flags" or "bssid / frequency / ..."
            continue
        if not line.strip():
            continue
        rows.append(line.split("\t"))
    return rows


def parse_network_list(output: str) -> list[NetworkConfigEntry]:
    """Parse ``list_networks`` output into entries in store order."""

    entries: list[NetworkConfigEntry] = []
    for fields in _split_table(output):
        try:
            network_id = int(fields[0].strip())
        except (IndexError, ValueError):
            continue
        ssid = fields[1] if len(fields) > 1 else ""
        bssid = fields[2].strip() if len(fields) > 2 else "any"
        flags = fields[3] if len(fields) > 3 else ""
        if "[CURRENT]" in flags:
            status = EntryStatus.CURRENT
        elif "[DISABLED]" in flags:
            status = EntryStatus.DISABLED
        else:
            status = EntryStatus.NONE
        entries.append(
            NetworkConfigEntry(
                network_id=network_id,
                ssid=ssid,
                bssid=bssid or "any",
                status=status,
            )
        )
    return entries


class ControlClient:
    """Abstract command set the connection engine needs from the supplicant."""

    def list_networks(self) -> list[NetworkConfigEntry]:  # pragma: no cover - interface only
        raise NotImplementedError

    def add_network(self) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    def set_network(self, network_id: int, field: str, value: str) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def select_network(self, network_id: int) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def remove_network(self, network_id: int) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def save_config(self) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def reconfigure(self) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def reassociate(self) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def scan(self) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def scan_results(self) -> list[list[str]]:  # pragma: no cover - interface only
        raise NotImplementedError


class WpaCliClient(ControlClient):
    """Drive ``wpa_supplicant`` through ``wpa_cli -i <interface>``."""

    def __init__(
        self,
        interface: str = "wlan0",
        *,
        executable: str = DEFAULT_WPA_CLI,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self._interface = interface
        self._executable = executable
        self._timeout = timeout

    @property
    def interface(self) -> str:
        return self._interface

    # ------------------------------- helpers -------------------------------
    def _run(self, args: Sequence[str]) -> str:
        return run_command(args, timeout=self._timeout)

    def _command(self, *args: str, raw: bool = False) -> str:
        output = self._run([self._executable, "-i", self._interface, *args])
        reply = output.strip()
        logger.debug("wpa_cli %s -> %s", args[0], reply.splitlines()[:1])
        return output if raw else reply

    # ---------------------------- interface impl ---------------------------
    def list_networks(self) -> list[NetworkConfigEntry]:
        return parse_network_list(self._command("list_networks", raw=True))

    def add_network(self) -> int:
        reply = self._command("add_network")
        try:
            return int(reply.splitlines()[-1].strip())
        except (IndexError, ValueError) as exc:
            raise ControlClientError(f"Unexpected add_network reply: {reply!r}") from exc

    def set_network(self, network_id: int, field: str, value: str) -> str:
        return self._command("set_network", str(network_id), field, value)

    def select_network(self, network_id: int) -> str:
        return self._command("select_network", str(network_id))

    def remove_network(self, network_id: int) -> str:
        return self._command("remove_network", str(network_id))

    def save_config(self) -> str:
        return self._command("save_config")

    def reconfigure(self) -> str:
        return self._command("reconfigure")

    def reassociate(self) -> str:
        return self._command("reassociate")

    def scan(self) -> str:
        return self._command("scan")

    def scan_results(self) -> list[list[str]]:
        return _split_table(self._command("scan_results", raw=True))


__all__ = [
    "ControlClient",
    "ControlClientError",
    "EntryStatus",
    "NetworkConfigEntry",
    "WipiError",
    "WpaCliClient",
    "derive_psk",
    "is_ok",
    "parse_network_list",
    "run_command",
]
