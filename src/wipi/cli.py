"""Command-line helpers for inspecting and switching the wireless interface."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Sequence

from .config import load_settings
from .connection import WeakCredentialError
from .facade import WipiFacade, create_facade
from .scanner import ScanFailure


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the wipi CLI."""

    parser = argparse.ArgumentParser(
        prog="python -m wipi",
        description="Inspect and manage a wpa_supplicant controlled interface",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit results as JSON for scripting.",
    )
    parser.add_argument("--interface", help="Wireless interface (default: wlan0).")
    parser.add_argument("--config", help="Path to a JSON settings file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show association state and addressing.")
    commands.add_parser("scan", help="List wireless hubs in range.")
    connect = commands.add_parser("connect", help="Switch to a WPA-PSK network.")
    connect.add_argument("ssid")
    connect.add_argument("psk")
    commands.add_parser("clear", help="Remove every configured network.")
    traffic = commands.add_parser("traffic", help="Show RX/TX byte counters.")
    traffic.add_argument("traffic_interface", nargs="?", default=None)
    ping = commands.add_parser("ping", help="Check internet reachability.")
    ping.add_argument("target", nargs="?", default=None)
    return parser


def _emit(payload: dict[str, object], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return
    for key, value in payload.items():
        if isinstance(value, list):
            print(f"{key}:")
            for item in value:
                print(f"  {item}")
        else:
            print(f"{key}: {value}")


def _progress(as_json: bool):
    def _report(message: str) -> None:
        if not as_json:
            print(f"--> {message}")

    return _report


def run(facade: WipiFacade, args: argparse.Namespace) -> int:
    report = _progress(args.json)
    if args.command == "status":
        status = facade.refresh_status()
        if status.associated:
            facade.check_internet_reachability()
        _emit(facade.status.to_dict(), args.json)
        return 0
    if args.command == "scan":
        try:
            hubs = asyncio.run(facade.refresh_hubs())
        except ScanFailure as exc:
            print(f"Scan failed: {exc}", file=sys.stderr)
            return 1
        if args.json:
            _emit({"hubs": [hub.to_dict() for hub in hubs]}, True)
        else:
            for hub in hubs:
                print(f"{hub.signal_level:>5}  {hub.security.value:<9} {hub.ssid}")
        return 0
    if args.command == "connect":
        try:
            result = asyncio.run(facade.connect(args.ssid, args.psk, report))
        except WeakCredentialError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        _emit(result.to_dict(), args.json)
        return 0 if result.succeeded else 1
    if args.command == "clear":
        removed = facade.clear_all_connections(report)
        _emit({"removed": removed}, args.json)
        return 0
    if args.command == "traffic":
        _emit(facade.get_traffic(args.traffic_interface).to_dict(), args.json)
        return 0
    if args.command == "ping":
        reachable = facade.check_internet_reachability(args.target)
        _emit({"reachable": reachable}, args.json)
        return 0 if reachable else 1
    raise ValueError(f"Unknown command {args.command!r}")  # pragma: no cover - argparse guards this


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        settings = load_settings(args.config)
    except ValueError as exc:
        parser.error(str(exc))
    if args.interface:
        settings = replace(settings, interface=args.interface)
    return run(create_facade(settings), args)


__all__ = ["build_parser", "main", "run"]
