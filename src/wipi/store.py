"""Credential store housekeeping performed through the control client."""

from __future__ import annotations

import logging
from typing import Callable

from .control import ControlClient, ControlClientError, EntryStatus, NetworkConfigEntry, is_ok


logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


def _ignore(_message: str) -> None:
    return None


def find_rollback_target(
    entries: list[NetworkConfigEntry],
    *,
    exclude: int | None = None,
) -> NetworkConfigEntry | None:
    """Return the configuration to fall back to after a failed switch.

    Heuristic: the first DISABLED entry in store order, skipping ``exclude``,
    is taken to be the previous working configuration. Selecting a network
    disables every other block, so this only holds while the store contains a
    single stale entry.
    """

    for entry in entries:
        if entry.network_id == exclude:
            continue
        if entry.status is EntryStatus.DISABLED:
            return entry
    return None


class ConfigStore:
    """Remove network blocks from the supplicant's credential store."""

    def __init__(self, client: ControlClient) -> None:
        self._client = client

    def _remove(self, entries: list[NetworkConfigEntry], report: Reporter) -> int:
        removed = 0
        try:
            for entry in entries:
                logger.info("Removing network %d = %s", entry.network_id, entry.ssid)
                report(f"Removing network {entry.network_id} = {entry.ssid}")
                reply = self._client.remove_network(entry.network_id)
                if not is_ok(reply):
                    logger.warning("remove_network %d returned %r", entry.network_id, reply)
                    report(f"Unable to remove network {entry.network_id}: {reply}")
                    continue
                removed += 1
        except ControlClientError as exc:
            logger.error("Unable to remove network: %s", exc)
            report(f"Error removing network: {exc}")
        if removed:
            self._save(report)
        return removed

    def _save(self, report: Reporter) -> None:
        try:
            reply = self._client.save_config()
        except ControlClientError as exc:
            logger.error("Unable to save credential store: %s", exc)
            report(f"Error saving credential store: {exc}")
            return
        logger.info("save_config -> %s", reply)

    def _list(self, report: Reporter) -> list[NetworkConfigEntry] | None:
        try:
            return self._client.list_networks()
        except ControlClientError as exc:
            logger.error("Unable to list configured networks: %s", exc)
            report(f"Error listing configured networks: {exc}")
            return None

    def prune_disabled(self, report: Reporter | None = None) -> int:
        """Remove every DISABLED entry and save once when anything changed."""

        report = report or _ignore
        entries = self._list(report)
        if entries is None:
            return 0
        disabled = [entry for entry in entries if entry.status is EntryStatus.DISABLED]
        removed = self._remove(disabled, _ignore)
        if removed:
            logger.info("Deleted %d disabled network(s)", removed)
        else:
            logger.info("No extra networks found; credential store is clean")
        return removed

    def clear_all(self, report: Reporter | None = None) -> int:
        """Remove every entry; save exactly once if at least one was removed."""

        report = report or _ignore
        report("Clearing all wireless connections...")
        entries = self._list(report)
        if entries is None:
            return 0
        removed = self._remove(entries, report)
        report(f"Removed {removed} network(s).")
        return removed


__all__ = ["ConfigStore", "Reporter", "find_rollback_target"]
