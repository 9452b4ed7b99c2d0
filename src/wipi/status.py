"""Host introspection for the managed wireless interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Sequence

from .control import DEFAULT_COMMAND_TIMEOUT, ControlClientError, WipiError, run_command


logger = logging.getLogger(__name__)

DEFAULT_PING_TARGET = "google.com"

NOT_ASSOCIATED_MARKERS = ("Not-Associated", "Ad-Hoc")


class ProbeFailure(WipiError):
    """Raised internally when the reachability probe cannot be completed."""


@dataclass(slots=True)
class InterfaceStatus:
    """Snapshot of the interface association and addressing state."""

    associated: bool = False
    link_quality: str = ""
    signal_level: str = ""
    connected_ssid: str = ""
    connected_bssid: str = ""
    ip_address: str = ""
    mac_address: str = ""
    host_name: str = ""
    internet_reachable: bool | None = None

    def with_reachability(self, reachable: bool | None) -> "InterfaceStatus":
        return replace(self, internet_reachable=reachable)

    def link_signature(self) -> tuple[bool, str, str, str]:
        """Fields whose change counts as a status transition."""

        return (self.associated, self.connected_ssid, self.connected_bssid, self.ip_address)

    def to_dict(self) -> dict[str, object | None]:
        return {
            "associated": self.associated,
            "link_quality": self.link_quality,
            "signal_level": self.signal_level,
            "connected_ssid": self.connected_ssid,
            "connected_bssid": self.connected_bssid,
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "host_name": self.host_name,
            "internet_reachable": self.internet_reachable,
        }


@dataclass(frozen=True, slots=True)
class TrafficCounters:
    """Byte counters since boot for an interface; empty strings when unknown."""

    rx_bytes: str = ""
    tx_bytes: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"rx_bytes": self.rx_bytes, "tx_bytes": self.tx_bytes}


def _token_after(text: str, label: str, delimiter: str) -> str:
    index = text.find(label)
    if index < 0:
        return ""
    remainder = text[index + len(label):]
    return remainder.split(delimiter, 1)[0].strip()


def parse_iwconfig(output: str) -> dict[str, str]:
    """Extract link details from associated ``iwconfig`` output."""

    ssid = ""
    index = output.find('ESSID:"')
    if index >= 0:
        ssid = output[index + len('ESSID:"'):].split('"', 1)[0].strip()
    return {
        "connected_ssid": ssid,
        "connected_bssid": _token_after(output, "Access Point:", "\n"),
        "link_quality": _token_after(output, "Link Quality=", " "),
        "signal_level": _token_after(output, "Signal level=", " "),
    }


def parse_mac_address(output: str) -> str:
    return _token_after(output, "link/ether ", " ")


def parse_traffic(output: str) -> TrafficCounters:
    """Read RX/TX byte counters from ``ip -s link show`` output."""

    rx_bytes = ""
    tx_bytes = ""
    lines = output.splitlines()
    for index, line in enumerate(lines):
        header = line.strip()
        if index + 1 >= len(lines):
            break
        counters = lines[index + 1].split()
        if not counters:
            continue
        if header.startswith("RX:"):
            rx_bytes = counters[0]
        elif header.startswith("TX:"):
            tx_bytes = counters[0]
    return TrafficCounters(rx_bytes=rx_bytes, tx_bytes=tx_bytes)


def ping_succeeded(output: str) -> bool:
    return " 1 received" in output or " 1 packets received" in output


class StatusReader:
    """Read the interface state through ``iwconfig``, ``hostname`` and ``ip``."""

    def __init__(
        self,
        interface: str = "wlan0",
        *,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self._interface = interface
        self._timeout = timeout

    @property
    def interface(self) -> str:
        return self._interface

    # ------------------------------- helpers -------------------------------
    def _run(self, args: Sequence[str]) -> str:
        return run_command(args, timeout=self._timeout)

    def _first_line(self, args: Sequence[str]) -> str:
        try:
            output = self._run(args)
        except ControlClientError as exc:
            logger.warning("%s failed: %s", " ".join(args), exc)
            return ""
        lines = output.splitlines()
        return lines[0].strip() if lines else ""

    # ------------------------------ operations -----------------------------
    def primary_address(self) -> str:
        """Return the first address reported by ``hostname -I``."""

        addresses = self._first_line(["hostname", "-I"])
        return addresses.split()[0] if addresses else ""

    def read(self) -> InterfaceStatus:
        status = InterfaceStatus()
        try:
            output = self._run(["iwconfig", self._interface])
        except ControlClientError as exc:
            logger.error("Unable to read %s association state: %s", self._interface, exc)
            output = None
        if output is not None:
            if any(marker in output for marker in NOT_ASSOCIATED_MARKERS):
                logger.debug("%s not associated", self._interface)
            else:
                status.associated = True
                for key, value in parse_iwconfig(output).items():
                    setattr(status, key, value)
        self._read_addressing(status)
        return status

    def _read_addressing(self, status: InterfaceStatus) -> None:
        status.ip_address = self._first_line(["hostname", "-I"])
        status.host_name = self._first_line(["hostname"])
        try:
            output = self._run(["ip", "addr", "show", self._interface])
        except ControlClientError as exc:
            logger.warning("Unable to read MAC address of %s: %s", self._interface, exc)
            return
        status.mac_address = parse_mac_address(output)

    def read_traffic(self, interface: str | None = None) -> TrafficCounters:
        target = interface or self._interface
        try:
            output = self._run(["ip", "-s", "link", "show", target])
        except ControlClientError as exc:
            logger.error("Unable to read traffic counters for %s: %s", target, exc)
            return TrafficCounters()
        counters = parse_traffic(output)
        logger.debug("%s RX bytes=%s TX bytes=%s", target, counters.rx_bytes, counters.tx_bytes)
        return counters

    def _ping(self, target: str) -> bool:
        try:
            output = self._run(["ping", "-c1", target])
        except ControlClientError as exc:
            raise ProbeFailure(f"Ping to {target} failed: {exc}") from exc
        return ping_succeeded(output)

    def probe(self, target: str = DEFAULT_PING_TARGET) -> bool:
        """Single-packet reachability probe; failures resolve to ``False``."""

        try:
            return self._ping(target)
        except ProbeFailure as exc:
            logger.info("%s", exc)
            return False


__all__ = [
    "DEFAULT_PING_TARGET",
    "InterfaceStatus",
    "ProbeFailure",
    "StatusReader",
    "TrafficCounters",
    "parse_iwconfig",
    "parse_mac_address",
    "parse_traffic",
    "ping_succeeded",
]
