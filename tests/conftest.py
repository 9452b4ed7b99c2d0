from __future__ import annotations

from typing import Iterable

import pytest

from wipi.control import ControlClient, ControlClientError, EntryStatus, NetworkConfigEntry


MUTATING_COMMANDS = {
    "add_network",
    "set_network",
    "select_network",
    "remove_network",
    "save_config",
    "reconfigure",
    "reassociate",
}


class FakeControlClient(ControlClient):
    """In-memory stand-in for ``wpa_cli`` that behaves like the supplicant."""

    def __init__(self, entries: Iterable[NetworkConfigEntry] = ()) -> None:
        self.entries: list[NetworkConfigEntry] = list(entries)
        self.calls: list[tuple[object, ...]] = []
        self.replies: dict[str, str | list[str]] = {}
        self.errors: dict[str, Exception] = {}
        self.scan_rows: list[list[str]] = []
        self._next_id = max((entry.network_id for entry in self.entries), default=-1) + 1

    # ------------------------------- helpers -------------------------------
    @property
    def mutations(self) -> list[tuple[object, ...]]:
        return [call for call in self.calls if call[0] in MUTATING_COMMANDS]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _call(self, name: str, *args: object) -> str:
        self.calls.append((name, *args))
        error = self.errors.get(name)
        if error is not None:
            raise error
        reply = self.replies.get(name, "OK")
        if isinstance(reply, list):
            return reply.pop(0) if reply else "OK"
        return reply

    def _replace(self, network_id: int, **changes: object) -> None:
        for index, entry in enumerate(self.entries):
            if entry.network_id == network_id:
                values = entry.to_dict()
                values.update(changes)
                values["status"] = EntryStatus(values["status"])
                self.entries[index] = NetworkConfigEntry(**values)

    # ---------------------------- interface impl ---------------------------
    def list_networks(self) -> list[NetworkConfigEntry]:
        self._call("list_networks")
        return list(self.entries)

    def add_network(self) -> int:
        self._call("add_network")
        network_id = self._next_id
        self._next_id += 1
        self.entries.append(NetworkConfigEntry(network_id=network_id, ssid=""))
        return network_id

    def set_network(self, network_id: int, field: str, value: str) -> str:
        reply = self._call("set_network", network_id, field, value)
        if reply == "OK" and field == "ssid":
            self._replace(network_id, ssid=value.strip('"'))
        return reply

    def select_network(self, network_id: int) -> str:
        reply = self._call("select_network", network_id)
        if reply == "OK":
            for entry in list(self.entries):
                status = EntryStatus.CURRENT if entry.network_id == network_id else EntryStatus.DISABLED
                self._replace(entry.network_id, status=status.value)
        return reply

    def remove_network(self, network_id: int) -> str:
        reply = self._call("remove_network", network_id)
        if reply == "OK":
            self.entries = [entry for entry in self.entries if entry.network_id != network_id]
        return reply

    def save_config(self) -> str:
        return self._call("save_config")

    def reconfigure(self) -> str:
        return self._call("reconfigure")

    def reassociate(self) -> str:
        return self._call("reassociate")

    def scan(self) -> str:
        return self._call("scan")

    def scan_results(self) -> list[list[str]]:
        self._call("scan_results")
        return [list(row) for row in self.scan_rows]


class AddressSequence:
    """Callable returning queued addresses, then empty strings."""

    def __init__(self, addresses: Iterable[str] = ()) -> None:
        self._addresses = list(addresses)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self._addresses:
            return self._addresses.pop(0)
        return ""


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def home_entries() -> list[NetworkConfigEntry]:
    return [NetworkConfigEntry(network_id=0, ssid="Home", status=EntryStatus.CURRENT)]


@pytest.fixture
def client() -> FakeControlClient:
    return FakeControlClient(home_entries())


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


__all__ = [
    "AddressSequence",
    "ControlClientError",
    "FakeControlClient",
    "SleepRecorder",
    "home_entries",
]
