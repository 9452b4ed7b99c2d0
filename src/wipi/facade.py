"""Facade owning the interface status, the hub cache and change notifications."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable

from .config import WipiSettings
from .connection import AttemptOutcome, ConnectionManager, ConnectionResult, ConnectionState
from .control import WpaCliClient
from .event_log import EventLog
from .scanner import HubRecord, NetworkScanner
from .status import DEFAULT_PING_TARGET, InterfaceStatus, StatusReader, TrafficCounters
from .store import Reporter


logger = logging.getLogger(__name__)

STATUS_CHANGED = "status_changed"
HUBS_CHANGED = "hubs_changed"
INTERNET_REACHABILITY_CHANGED = "internet_reachability_changed"

EVENTS = (STATUS_CHANGED, HUBS_CHANGED, INTERNET_REACHABILITY_CHANGED)

Listener = Callable[[object], None]


class WipiFacade:
    """Public entry point for status, scanning and connection changes.

    Instances are constructed explicitly and own their cached state. The
    cached :class:`InterfaceStatus` and hub list are replaced wholesale on
    refresh; callers receive copies and never mutate the cache.
    """

    def __init__(
        self,
        reader: StatusReader,
        scanner: NetworkScanner,
        manager: ConnectionManager,
        *,
        ping_target: str = DEFAULT_PING_TARGET,
        event_log: EventLog | None = None,
    ) -> None:
        self._reader = reader
        self._scanner = scanner
        self._manager = manager
        self._ping_target = ping_target
        self._event_log = event_log or EventLog()
        self._state_lock = threading.Lock()
        self._status = InterfaceStatus()
        self._hubs: list[HubRecord] = []
        self._hub_details: list[HubRecord] = []
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}

    # ------------------------------ properties -----------------------------
    @property
    def status(self) -> InterfaceStatus:
        with self._state_lock:
            return self._status.with_reachability(self._status.internet_reachable)

    @property
    def hubs(self) -> list[HubRecord]:
        with self._state_lock:
            return list(self._hubs)

    @property
    def hub_details(self) -> list[HubRecord]:
        with self._state_lock:
            return list(self._hub_details)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def busy(self) -> bool:
        """True while a connection change holds the control plane."""

        return self._manager.busy

    # ---------------------------- subscriptions ----------------------------
    def subscribe(self, event: str, listener: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}")
        self._listeners[event].append(listener)

    def unsubscribe(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def _emit(self, event: str, payload: object) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception:
                logger.debug("Listener for %s failed", event, exc_info=True)

    # ------------------------------ operations -----------------------------
    def refresh_status(self) -> InterfaceStatus:
        """Read a fresh snapshot and replace the cached status."""

        snapshot = self._reader.read()
        with self._state_lock:
            previous = self._status
            snapshot = snapshot.with_reachability(previous.internet_reachable)
            self._status = snapshot
        changed = snapshot.link_signature() != previous.link_signature()
        if changed:
            self._event_log.record(
                "status",
                "status_changed",
                "Interface associated." if snapshot.associated else "Interface not associated.",
                metadata={
                    "ssid": snapshot.connected_ssid or None,
                    "ip_address": snapshot.ip_address or None,
                },
            )
            self._emit(STATUS_CHANGED, self.status)
        return self.status

    def check_internet_reachability(self, target: str | None = None) -> bool:
        """Probe ``target`` and notify only when the result flips."""

        host = target or self._ping_target
        reachable = bool(self._reader.probe(host))
        with self._state_lock:
            previous = self._status.internet_reachable
            self._status = self._status.with_reachability(reachable)
        if previous is not reachable:
            if reachable:
                logger.info("Internet connection OK to %s", host)
            else:
                logger.warning("Internet connection not reachable to %s", host)
            self._event_log.record(
                "internet",
                "reachability_changed",
                f"Internet {'reachable' if reachable else 'unreachable'} via {host}.",
            )
            self._emit(INTERNET_REACHABILITY_CHANGED, reachable)
        return reachable

    async def refresh_hubs(self) -> list[HubRecord]:
        """Scan and replace the hub cache; notify when the SSID list differs."""

        hubs = await self._scanner.scan()
        details = self._scanner.last_details
        with self._state_lock:
            previous = [hub.ssid for hub in self._hubs]
            self._hubs = list(hubs)
            self._hub_details = details
        if [hub.ssid for hub in hubs] != previous:
            self._event_log.record(
                "scan",
                "hubs_changed",
                f"{len(hubs)} wireless hub(s) in range.",
            )
            self._emit(HUBS_CHANGED, list(hubs))
        return list(hubs)

    async def refresh_all(self) -> list[HubRecord]:
        status = await asyncio.to_thread(self.refresh_status)
        if status.associated:
            await asyncio.to_thread(self.check_internet_reachability)
        return await self.refresh_hubs()

    async def connect(
        self,
        ssid: str,
        psk: str,
        reporter: Reporter | None = None,
    ) -> ConnectionResult:
        """Switch to ``ssid``; resolves to the terminal state of the change."""

        result = await asyncio.to_thread(
            self._manager.apply_and_verify, ssid, psk, self._reporter(reporter)
        )
        self._event_log.record(
            "connection",
            result.state.value,
            f"Connection change to {ssid} finished: {result.state.value}.",
            metadata={"ip_address": result.ip_address or None, "error": result.error},
        )
        await asyncio.to_thread(self.refresh_status)
        return result

    def connect_enterprise(
        self,
        ssid: str,
        psk: str,
        identity: str,
        reporter: Reporter | None = None,
    ) -> ConnectionResult:
        """WPA2-Enterprise provisioning is disabled; nothing is written."""

        message = "Enterprise (WPA2-EAP) configuration is disabled."
        logger.info("Setting WPA2-EAP network for SSID %s requested: %s", ssid, message)
        self._reporter(reporter)(message)
        return ConnectionResult(
            state=ConnectionState.FAILED,
            outcome=AttemptOutcome.FAILED,
            ssid=ssid,
            history=[ConnectionState.IDLE, ConnectionState.FAILED],
            messages=[message],
            error=message,
        )

    def get_traffic(self, interface: str | None = None) -> TrafficCounters:
        return self._reader.read_traffic(interface)

    def clear_all_connections(self, reporter: Reporter | None = None) -> int:
        logger.warning("Clearing all wireless connections")
        return self._manager.clear_all_connections(self._reporter(reporter))

    # ------------------------------- helpers -------------------------------
    def _reporter(self, reporter: Reporter | None) -> Reporter:
        def _report(message: str) -> None:
            self._event_log.record("progress", "progress", message)
            if reporter is None:
                return
            try:
                reporter(message)
            except Exception:  # pragma: no cover - defensive logging
                logger.debug("Progress reporter failed", exc_info=True)

        return _report


def create_facade(settings: WipiSettings | None = None) -> WipiFacade:
    """Wire the ``wpa_cli`` and host command adapters described by ``settings``."""

    settings = settings or WipiSettings()
    client = WpaCliClient(
        settings.interface,
        executable=settings.wpa_cli,
        timeout=settings.command_timeout,
    )
    reader = StatusReader(settings.interface, timeout=settings.command_timeout)
    event_log = EventLog(Path(settings.event_log_path)) if settings.event_log_path else EventLog()
    return WipiFacade(
        reader,
        NetworkScanner(client),
        ConnectionManager(client, reader.primary_address),
        ping_target=settings.ping_target,
        event_log=event_log,
    )


__all__ = [
    "EVENTS",
    "HUBS_CHANGED",
    "INTERNET_REACHABILITY_CHANGED",
    "Listener",
    "STATUS_CHANGED",
    "WipiFacade",
    "create_facade",
]
