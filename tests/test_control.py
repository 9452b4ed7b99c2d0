import subprocess

import pytest

from wipi import control
from wipi.control import (
    ControlClientError,
    EntryStatus,
    NetworkConfigEntry,
    WpaCliClient,
    derive_psk,
    is_ok,
    parse_network_list,
)


LIST_NETWORKS_OUTPUT = (
    "network id / ssid / bssid / flags\n"
    "0\tHome\tany\t[DISABLED]\n"
    "1\tOffice\tany\t[CURRENT]\n"
    "2\tCafe\tany\t\n"
)


def _client_with_output(monkeypatch: pytest.MonkeyPatch, output: str) -> tuple[WpaCliClient, list[list[str]]]:
    client = WpaCliClient("wlan1", executable="wpa_cli")
    commands: list[list[str]] = []

    def fake_run(args: list[str]) -> str:
        commands.append(list(args))
        return output

    monkeypatch.setattr(client, "_run", fake_run)
    return client, commands


def test_derive_psk_matches_reference_vector() -> None:
    assert derive_psk("IEEE", "password") == (
        "f42c6fc52df0ebef9ebb4b90b38a5f902e83fe1b135a70e23aed762e9710a12e"
    )


def test_is_ok_accepts_only_exact_reply() -> None:
    assert is_ok("OK\n")
    assert not is_ok("FAIL")
    assert not is_ok("OK-BUSY")
    assert not is_ok(None)


def test_parse_network_list_maps_flags() -> None:
    entries = parse_network_list(LIST_NETWORKS_OUTPUT)

    assert entries == [
        NetworkConfigEntry(network_id=0, ssid="Home", status=EntryStatus.DISABLED),
        NetworkConfigEntry(network_id=1, ssid="Office", status=EntryStatus.CURRENT),
        NetworkConfigEntry(network_id=2, ssid="Cafe", status=EntryStatus.NONE),
    ]


def test_parse_network_list_skips_garbage_lines() -> None:
    output = "network id / ssid / bssid / flags\nSelected interface 'wlan0'\n\n3\tLab\n"

    entries = parse_network_list(output)

    assert entries == [NetworkConfigEntry(network_id=3, ssid="Lab")]


def test_list_networks_runs_wpa_cli_on_interface(monkeypatch: pytest.MonkeyPatch) -> None:
    client, commands = _client_with_output(monkeypatch, LIST_NETWORKS_OUTPUT)

    entries = client.list_networks()

    assert commands == [["wpa_cli", "-i", "wlan1", "list_networks"]]
    assert [entry.network_id for entry in entries] == [0, 1, 2]


def test_set_network_passes_arguments_through(monkeypatch: pytest.MonkeyPatch) -> None:
    client, commands = _client_with_output(monkeypatch, "OK\n")

    reply = client.set_network(4, "ssid", '"Cafe"')

    assert reply == "OK"
    assert commands == [["wpa_cli", "-i", "wlan1", "set_network", "4", "ssid", '"Cafe"']]


@pytest.mark.parametrize(
    ("method", "args", "expected"),
    [
        ("select_network", (2,), ["select_network", "2"]),
        ("remove_network", (5,), ["remove_network", "5"]),
        ("save_config", (), ["save_config"]),
        ("reconfigure", (), ["reconfigure"]),
        ("reassociate", (), ["reassociate"]),
        ("scan", (), ["scan"]),
    ],
)
def test_simple_commands(
    monkeypatch: pytest.MonkeyPatch, method: str, args: tuple[int, ...], expected: list[str]
) -> None:
    client, commands = _client_with_output(monkeypatch, "OK\n")

    assert getattr(client, method)(*args) == "OK"
    assert commands == [["wpa_cli", "-i", "wlan1", *expected]]


def test_add_network_returns_new_id(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client_with_output(monkeypatch, "7\n")

    assert client.add_network() == 7


def test_add_network_rejects_unexpected_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client_with_output(monkeypatch, "FAIL\n")

    with pytest.raises(ControlClientError):
        client.add_network()


def test_scan_results_keep_hidden_ssid_column(monkeypatch: pytest.MonkeyPatch) -> None:
    output = (
        "bssid / frequency / signal level / flags / ssid\n"
        "aa:bb:cc:dd:ee:01\t2412\t-40\t[WPA2-PSK-CCMP][ESS]\tHome\n"
        "aa:bb:cc:dd:ee:02\t2437\t-80\t[ESS]\t\n"
    )
    client, _ = _client_with_output(monkeypatch, output)

    rows = client.scan_results()

    assert rows == [
        ["aa:bb:cc:dd:ee:01", "2412", "-40", "[WPA2-PSK-CCMP][ESS]", "Home"],
        ["aa:bb:cc:dd:ee:02", "2437", "-80", "[ESS]", ""],
    ]


def test_run_command_converts_process_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args, **kwargs):
        raise subprocess.CalledProcessError(1, ["wpa_cli"], output="", stderr="Failed to connect")

    monkeypatch.setattr(control.subprocess, "run", fake_run)

    with pytest.raises(ControlClientError, match="Failed to connect"):
        control.run_command(["wpa_cli", "status"])
