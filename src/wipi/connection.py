"""Connection-change state machine with rollback to the previous network."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .control import (
    ControlClient,
    ControlClientError,
    EntryStatus,
    WipiError,
    derive_psk,
    is_ok,
)
from .store import ConfigStore, Reporter, find_rollback_target


logger = logging.getLogger(__name__)

MIN_PSK_LENGTH = 8
ADDRESS_POLL_ATTEMPTS = 5
ADDRESS_POLL_INTERVAL = 6.0

ROLLBACK_SUCCEEDED_MESSAGE = "Rollback to previous configuration successful."
NEW_CONNECTION_FAILED_MESSAGE = "Failed to connect to new network."
NO_BACKUP_MESSAGE = "No backup configuration exists."


class ConnectionChangeError(WipiError):
    """Base class for failures while switching networks."""


class WeakCredentialError(ConnectionChangeError, ValueError):
    """The pre-shared key is too short to be a WPA passphrase."""


class CredentialWriteError(ConnectionChangeError):
    """A credential store mutation did not return ``OK``."""


class ReassociationError(ConnectionChangeError):
    """``reconfigure`` or ``reassociate`` did not return ``OK``."""


class AddressTimeoutError(ConnectionChangeError):
    """No address was acquired before the poll attempts ran out."""


class RollbackFailedError(ConnectionChangeError):
    """The previous configuration was restored but did not come up either."""


class ConnectionState(str, Enum):
    IDLE = "idle"
    CREDENTIAL_WRITE = "credential_write"
    REASSOCIATING = "reassociating"
    AWAITING_ADDRESS = "awaiting_address"
    CONNECTED = "connected"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"
    ROLLBACK_IMPOSSIBLE = "rollback_impossible"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {
        ConnectionState.CONNECTED,
        ConnectionState.ROLLED_BACK,
        ConnectionState.ROLLBACK_FAILED,
        ConnectionState.ROLLBACK_IMPOSSIBLE,
        ConnectionState.FAILED,
    }
)


class AttemptOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass(slots=True)
class ConnectionAttempt:
    """Working state of a single ``apply_and_verify`` call."""

    target_ssid: str
    encoded_credential: str
    network_id: int | None = None
    prior_current_id: int | None = None
    restored_id: int | None = None
    ip_address: str = ""
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    state: ConnectionState = ConnectionState.IDLE
    history: list[ConnectionState] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ConnectionResult:
    """Terminal description of a connection change."""

    state: ConnectionState
    outcome: AttemptOutcome
    ssid: str
    network_id: int | None = None
    prior_current_id: int | None = None
    restored_id: int | None = None
    ip_address: str = ""
    history: list[ConnectionState] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    def to_dict(self) -> dict[str, object | None]:
        return {
            "state": self.state.value,
            "outcome": self.outcome.value,
            "ssid": self.ssid,
            "network_id": self.network_id,
            "prior_current_id": self.prior_current_id,
            "restored_id": self.restored_id,
            "ip_address": self.ip_address,
            "history": [state.value for state in self.history],
            "messages": list(self.messages),
            "error": self.error,
        }


class ConnectionManager:
    """Switch the supplicant to new credentials and roll back on failure.

    Only one change runs at a time; concurrent callers block on an internal
    lock until the in-flight change reaches a terminal state. The reporter
    passed to :meth:`apply_and_verify` receives progress messages only and
    cannot influence the outcome.
    """

    def __init__(
        self,
        client: ControlClient,
        address_reader: Callable[[], str],
        *,
        store: ConfigStore | None = None,
        poll_attempts: int = ADDRESS_POLL_ATTEMPTS,
        poll_interval: float = ADDRESS_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")
        self._client = client
        self._address_reader = address_reader
        self._store = store or ConfigStore(client)
        self._poll_attempts = poll_attempts
        self._poll_interval = max(0.0, poll_interval)
        self._sleep = sleep
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ------------------------------ operations -----------------------------
    def apply_and_verify(
        self,
        ssid: str,
        psk: str,
        reporter: Reporter | None = None,
    ) -> ConnectionResult:
        """Provision ``ssid`` and wait for an address, rolling back on failure.

        Raises :class:`WeakCredentialError` before touching the store when the
        key is shorter than eight characters; every other failure is reported
        through the returned :class:`ConnectionResult`.
        """

        if not isinstance(psk, str) or len(psk) < MIN_PSK_LENGTH:
            message = f"Pre-shared key too short; must be at least {MIN_PSK_LENGTH} characters."
            if reporter is not None:
                self._safe_report(reporter, message)
            raise WeakCredentialError(message)
        with self._lock:
            attempt = ConnectionAttempt(
                target_ssid=ssid,
                encoded_credential=derive_psk(ssid, psk),
            )
            attempt.history.append(attempt.state)
            logger.info("Setting new network with WPA-PSK security for SSID %s", ssid)
            return self._run(attempt, reporter)

    def clear_all_connections(self, reporter: Reporter | None = None) -> int:
        with self._lock:
            return self._store.clear_all(self._reporter_for(None, reporter))

    # ----------------------------- state machine ---------------------------
    def _run(self, attempt: ConnectionAttempt, reporter: Reporter | None) -> ConnectionResult:
        report = self._reporter_for(attempt, reporter)
        try:
            self._write_credentials(attempt, report)
        except CredentialWriteError as exc:
            report(f"Error updating the credential store; network change canceled: {exc}")
            self._transition(attempt, ConnectionState.FAILED)
            attempt.outcome = AttemptOutcome.FAILED
            return self._result(attempt, exc)
        try:
            self._reassociate(attempt, report)
            self._transition(attempt, ConnectionState.AWAITING_ADDRESS)
            attempt.ip_address = self._await_address(report)
        except (ReassociationError, AddressTimeoutError) as exc:
            logger.warning("Connection to %s failed: %s", attempt.target_ssid, exc)
            return self._roll_back(attempt, report, exc)
        self._transition(attempt, ConnectionState.CONNECTED)
        report("New connection established!")
        self._store.prune_disabled(report)
        attempt.outcome = AttemptOutcome.SUCCESS
        return self._result(attempt)

    def _write_credentials(self, attempt: ConnectionAttempt, report: Reporter) -> None:
        self._transition(attempt, ConnectionState.CREDENTIAL_WRITE)
        report(f"Writing credentials for {attempt.target_ssid}...")
        try:
            entries = self._client.list_networks()
        except ControlClientError as exc:
            logger.warning("Unable to read current network before switching: %s", exc)
            entries = []
        for entry in entries:
            if entry.status is EntryStatus.CURRENT:
                attempt.prior_current_id = entry.network_id
                logger.info("Current network number = %d", entry.network_id)
                break
        try:
            attempt.network_id = self._client.add_network()
            steps = (
                ("ssid", lambda: self._client.set_network(
                    attempt.network_id, "ssid", f'"{attempt.target_ssid}"'
                )),
                ("psk", lambda: self._client.set_network(
                    attempt.network_id, "psk", attempt.encoded_credential
                )),
                ("select", lambda: self._client.select_network(attempt.network_id)),
            )
            for name, step in steps:
                reply = step()
                logger.info("%s network %d -> %s", name, attempt.network_id, reply)
                if not is_ok(reply):
                    raise CredentialWriteError(f"Setting {name} returned {reply!r}")
        except ControlClientError as exc:
            raise CredentialWriteError(str(exc)) from exc
        # The new entry is selected from here on; only verification decides.
        self._persist()

    def _persist(self) -> None:
        """Write the store to disk; a refusal leaves the running config intact."""

        try:
            reply = self._client.save_config()
        except ControlClientError as exc:
            logger.warning("Unable to save credential store: %s", exc)
            return
        if not is_ok(reply):
            # wpa_supplicant refuses without update_config=1.
            logger.warning("save_config returned %r; configuration not persisted", reply)

    def _reassociate(
        self,
        attempt: ConnectionAttempt,
        report: Reporter,
        *,
        rolling_back: bool = False,
    ) -> None:
        if not rolling_back:
            self._transition(attempt, ConnectionState.REASSOCIATING)
        report("Verifying 802.11 settings...")
        for name, command in (
            ("reconfigure", self._client.reconfigure),
            ("reassociate", self._client.reassociate),
        ):
            try:
                reply = command()
            except ControlClientError as exc:
                raise ReassociationError(f"{name} failed: {exc}") from exc
            if not rolling_back:
                report(f"802.11 {name} result = {reply}")
            if not is_ok(reply):
                raise ReassociationError(f"{name} returned {reply!r}")

    def _await_address(self, report: Reporter) -> str:
        report("Waiting for IP address...")
        for attempt_number in range(1, self._poll_attempts + 1):
            self._sleep(self._poll_interval)
            address = self._read_address()
            logger.debug(
                "Address poll %d/%d -> %r", attempt_number, self._poll_attempts, address
            )
            if address:
                report(f"Received IP address {address}.")
                return address
            remaining = self._poll_attempts - attempt_number
            if remaining:
                report(f"{remaining * self._poll_interval:g} seconds until IP timeout.")
        report("Error getting IP address.")
        raise AddressTimeoutError(
            f"No address after {self._poll_attempts} attempts"
        )

    def _read_address(self) -> str:
        try:
            address = self._address_reader()
        except Exception:  # pragma: no cover - host probe errors
            logger.debug("Address lookup failed", exc_info=True)
            return ""
        return address.strip() if isinstance(address, str) else ""

    def _roll_back(
        self,
        attempt: ConnectionAttempt,
        report: Reporter,
        cause: ConnectionChangeError,
    ) -> ConnectionResult:
        self._transition(attempt, ConnectionState.ROLLING_BACK)
        report("Looking for backup network configuration...")
        try:
            entries = self._client.list_networks()
        except ControlClientError as exc:
            logger.error("Unable to list networks for rollback: %s", exc)
            entries = []
        backup = find_rollback_target(entries, exclude=attempt.network_id)
        if backup is None:
            report(NO_BACKUP_MESSAGE)
            self._transition(attempt, ConnectionState.ROLLBACK_IMPOSSIBLE)
            attempt.outcome = AttemptOutcome.FAILED
            return self._result(attempt, cause)
        attempt.restored_id = backup.network_id
        logger.info("Found backup network, activating network number %d", backup.network_id)
        try:
            reply = self._client.select_network(backup.network_id)
            if not is_ok(reply):
                raise ReassociationError(f"Restoring backup returned {reply!r}")
            self._persist()
            report("Backup network configuration found and selected.")
            self._reassociate(attempt, report, rolling_back=True)
            attempt.ip_address = self._await_address(report)
        except (ControlClientError, ReassociationError, AddressTimeoutError) as exc:
            failure = RollbackFailedError(f"Rollback to network {backup.network_id} failed: {exc}")
            logger.error("%s", failure)
            report("Rolling back to previous configuration failed!")
            self._transition(attempt, ConnectionState.ROLLBACK_FAILED)
            self._store.prune_disabled(report)
            attempt.outcome = AttemptOutcome.FAILED
            return self._result(attempt, failure)
        report(ROLLBACK_SUCCEEDED_MESSAGE)
        report(NEW_CONNECTION_FAILED_MESSAGE)
        self._transition(attempt, ConnectionState.ROLLED_BACK)
        self._store.prune_disabled(report)
        attempt.outcome = AttemptOutcome.ROLLED_BACK
        return self._result(attempt, cause)

    # ------------------------------- helpers -------------------------------
    def _transition(self, attempt: ConnectionAttempt, state: ConnectionState) -> None:
        logger.debug("%s: %s -> %s", attempt.target_ssid, attempt.state.value, state.value)
        attempt.state = state
        attempt.history.append(state)

    def _reporter_for(
        self,
        attempt: ConnectionAttempt | None,
        reporter: Reporter | None,
    ) -> Reporter:
        def _report(message: str) -> None:
            if attempt is not None:
                attempt.messages.append(message)
            logger.info("--> %s <--", message)
            if reporter is not None:
                self._safe_report(reporter, message)

        return _report

    @staticmethod
    def _safe_report(reporter: Reporter, message: str) -> None:
        try:
            reporter(message)
        except Exception:  # pragma: no cover - defensive logging
            logger.debug("Progress reporter failed", exc_info=True)

    @staticmethod
    def _result(
        attempt: ConnectionAttempt,
        error: Exception | None = None,
    ) -> ConnectionResult:
        return ConnectionResult(
            state=attempt.state,
            outcome=attempt.outcome,
            ssid=attempt.target_ssid,
            network_id=attempt.network_id,
            prior_current_id=attempt.prior_current_id,
            restored_id=attempt.restored_id,
            ip_address=attempt.ip_address,
            history=list(attempt.history),
            messages=list(attempt.messages),
            error=str(error) if error is not None else None,
        )


__all__ = [
    "ADDRESS_POLL_ATTEMPTS",
    "ADDRESS_POLL_INTERVAL",
    "AddressTimeoutError",
    "AttemptOutcome",
    "ConnectionAttempt",
    "ConnectionChangeError",
    "ConnectionManager",
    "ConnectionResult",
    "ConnectionState",
    "CredentialWriteError",
    "MIN_PSK_LENGTH",
    "NEW_CONNECTION_FAILED_MESSAGE",
    "NO_BACKUP_MESSAGE",
    "ROLLBACK_SUCCEEDED_MESSAGE",
    "ReassociationError",
    "RollbackFailedError",
    "TERMINAL_STATES",
    "WeakCredentialError",
]
