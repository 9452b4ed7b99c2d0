"""Access point discovery built on ``wpa_cli scan`` / ``scan_results``."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Sequence

from .control import ControlClient, ControlClientError, WipiError, is_ok


logger = logging.getLogger(__name__)

# Time the radio needs to finish a passive/active sweep before results are read.
SCAN_SETTLE_SECONDS = 2.0


class ScanFailure(WipiError):
    """Raised when the supplicant refuses to scan or report scan results."""


class SecurityClass(str, Enum):
    WPA2_EAP = "WPA2-EAP"
    WPA2_PSK = "WPA2-PSK"
    WPA_PSK = "WPA-PSK"
    LOW = "low"


_SECURITY_PRIORITY = (SecurityClass.WPA2_EAP, SecurityClass.WPA2_PSK, SecurityClass.WPA_PSK)


def classify_security(flags: str) -> SecurityClass:
    for candidate in _SECURITY_PRIORITY:
        if candidate.value in flags:
            return candidate
    return SecurityClass.LOW


@dataclass(frozen=True, slots=True)
class HubRecord:
    """An access point observed during a scan."""

    ssid: str
    signal_level: int
    security: SecurityClass = SecurityClass.LOW
    bssid: str = ""
    frequency: int | None = None
    flags: str = ""

    def to_dict(self) -> dict[str, object | None]:
        return {
            "ssid": self.ssid,
            "signal_level": self.signal_level,
            "security": self.security.value,
            "bssid": self.bssid,
            "frequency": self.frequency,
        }


def parse_scan_row(fields: Sequence[str]) -> HubRecord | None:
    """Convert one ``scan_results`` row; malformed rows yield ``None``."""

    if len(fields) < 5:
        return None
    bssid, frequency_raw, signal_raw, flags, ssid = fields[:5]
    if ":" not in bssid:
        return None
    try:
        signal_level = int(signal_raw.strip())
    except ValueError:
        return None
    try:
        frequency: int | None = int(frequency_raw.strip())
    except ValueError:
        frequency = None
    return HubRecord(
        ssid=ssid,
        signal_level=signal_level,
        security=classify_security(flags),
        bssid=bssid.strip(),
        frequency=frequency,
        flags=flags.strip(),
    )


def aggregate_hubs(records: Iterable[HubRecord]) -> tuple[list[HubRecord], list[HubRecord]]:
    """Return ``(hubs, details)`` for a batch of raw scan records.

    ``hubs`` holds one record per SSID, the strongest one seen, ordered by
    descending signal level. ``details`` keeps every record ordered by SSID,
    ignoring case. Both sorts are stable.
    """

    hubs: list[HubRecord] = []
    positions: dict[str, int] = {}
    details: list[HubRecord] = []
    for record in records:
        details.append(record)
        index = positions.get(record.ssid)
        if index is None:
            positions[record.ssid] = len(hubs)
            hubs.append(record)
        elif record.signal_level > hubs[index].signal_level:
            hubs[index] = record
    details.sort(key=lambda item: item.ssid.lower())
    hubs.sort(key=lambda item: item.signal_level, reverse=True)
    return hubs, details


class NetworkScanner:
    """Trigger a scan, wait for the radio to settle, and collect results."""

    def __init__(
        self,
        client: ControlClient,
        *,
        settle_delay: float = SCAN_SETTLE_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._settle_delay = settle_delay
        self._sleep = sleep
        self._last_details: list[HubRecord] = []

    @property
    def last_details(self) -> list[HubRecord]:
        """Every record from the most recent scan, sorted by SSID."""

        return list(self._last_details)

    async def scan(self) -> list[HubRecord]:
        try:
            reply = await asyncio.to_thread(self._client.scan)
        except ControlClientError as exc:
            raise ScanFailure(f"Unable to start scan: {exc}") from exc
        if not is_ok(reply):
            # A busy radio refuses new scans but still serves its cached results.
            logger.warning("Scan request returned %r; using cached results", reply)
        await self._sleep(self._settle_delay)
        try:
            rows = await asyncio.to_thread(self._client.scan_results)
        except ControlClientError as exc:
            raise ScanFailure(f"Unable to read scan results: {exc}") from exc
        records = []
        for fields in rows:
            record = parse_scan_row(fields)
            if record is None:
                logger.debug("Skipping malformed scan result %r", fields)
                continue
            records.append(record)
        hubs, details = aggregate_hubs(records)
        self._last_details = details
        logger.debug("Scan found %d hubs (%d results)", len(hubs), len(details))
        return hubs


__all__ = [
    "HubRecord",
    "NetworkScanner",
    "SCAN_SETTLE_SECONDS",
    "ScanFailure",
    "SecurityClass",
    "aggregate_hubs",
    "classify_security",
    "parse_scan_row",
]
