import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from conftest import AddressSequence, FakeControlClient, home_entries
from wipi.app import create_app
from wipi.connection import ConnectionManager
from wipi.control import ControlClientError
from wipi.event_log import EventLog
from wipi.facade import WipiFacade
from wipi.scanner import NetworkScanner
from wipi.status import InterfaceStatus, TrafficCounters


class FakeStatusReader:
    def __init__(self) -> None:
        self.snapshot = InterfaceStatus(
            associated=True,
            connected_ssid="Home",
            connected_bssid="12:34:56:78:9A:BC",
            ip_address="192.168.1.20",
            host_name="wipi",
        )
        self.reachable = True

    def read(self) -> InterfaceStatus:
        return self.snapshot.with_reachability(None)

    def probe(self, target: str) -> bool:
        return self.reachable

    def read_traffic(self, interface: str | None = None) -> TrafficCounters:
        return TrafficCounters(rx_bytes="1024", tx_bytes="2048")


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def wifi_client() -> FakeControlClient:
    client = FakeControlClient(home_entries())
    client.scan_rows = [
        ["aa:aa:aa:aa:aa:01", "2412", "-40", "[WPA2-PSK-CCMP][ESS]", "Home"],
        ["aa:aa:aa:aa:aa:02", "2412", "-60", "[ESS]", "Guest"],
        ["aa:aa:aa:aa:aa:03", "2412", "-70", "[WPA2-PSK-CCMP][ESS]", "Home"],
    ]
    return client


@pytest.fixture
def client(wifi_client: FakeControlClient) -> TestClient:
    manager = ConnectionManager(
        wifi_client,
        AddressSequence(["192.168.1.30"]),
        sleep=lambda _: None,
    )
    facade = WipiFacade(
        FakeStatusReader(),
        NetworkScanner(wifi_client, sleep=_no_sleep),
        manager,
        event_log=EventLog(),
    )
    app = create_app(facade=facade)
    with TestClient(app) as test_client:
        yield test_client


def test_status_endpoint(client: TestClient) -> None:
    response = client.get("/api/wifi/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["associated"] is True
    assert payload["connected_ssid"] == "Home"
    assert payload["internet_reachable"] is None


def test_refresh_returns_status_and_hubs(client: TestClient) -> None:
    response = client.post("/api/wifi/refresh")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"]["internet_reachable"] is True
    assert [hub["ssid"] for hub in payload["hubs"]] == ["Home", "Guest"]


def test_hub_listing_with_details(client: TestClient) -> None:
    client.post("/api/wifi/scan")

    summary = client.get("/api/wifi/hubs").json()
    details = client.get("/api/wifi/hubs", params={"details": "true"}).json()

    assert [hub["ssid"] for hub in summary["hubs"]] == ["Home", "Guest"]
    assert summary["hubs"][0]["security"] == "WPA2-PSK"
    assert [hub["ssid"] for hub in details["hubs"]] == ["Guest", "Home", "Home"]


def test_scan_failure_returns_service_unavailable(
    client: TestClient, wifi_client: FakeControlClient
) -> None:
    wifi_client.errors["scan"] = ControlClientError("wpa_cli command timed out")

    response = client.post("/api/wifi/scan")

    assert response.status_code == 503
    assert "timed out" in response.json()["detail"]


def test_internet_endpoint(client: TestClient) -> None:
    response = client.get("/api/wifi/internet", params={"target": "example.org"})

    assert response.status_code == 200
    assert response.json() == {"reachable": True}


def test_connect_endpoint(client: TestClient, wifi_client: FakeControlClient) -> None:
    response = client.post("/api/wifi/connect", json={"ssid": "Cafe", "psk": "espresso42"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["state"] == "connected"
    assert payload["ip_address"] == "192.168.1.30"
    assert "New connection established!" in payload["messages"]
    assert [entry.ssid for entry in wifi_client.entries] == ["Cafe"]


def test_connect_rejects_short_key(client: TestClient, wifi_client: FakeControlClient) -> None:
    response = client.post("/api/wifi/connect", json={"ssid": "Cafe", "psk": "short"})

    assert response.status_code == 400
    assert "too short" in response.json()["detail"]
    assert wifi_client.mutations == []


def test_connect_requires_ssid(client: TestClient) -> None:
    response = client.post("/api/wifi/connect", json={"ssid": "", "psk": "espresso42"})

    assert response.status_code == 422


def test_clear_endpoint(client: TestClient, wifi_client: FakeControlClient) -> None:
    response = client.post("/api/wifi/clear")

    assert response.status_code == 200
    payload = response.json()
    assert payload["removed"] == 1
    assert payload["messages"][-1] == "Removed 1 network(s)."
    assert wifi_client.entries == []


def test_traffic_endpoint(client: TestClient) -> None:
    response = client.get("/api/wifi/traffic", params={"interface": "eth0"})

    assert response.status_code == 200
    assert response.json() == {"rx_bytes": "1024", "tx_bytes": "2048"}


def test_log_endpoint_returns_newest_first(client: TestClient) -> None:
    client.post("/api/wifi/connect", json={"ssid": "Cafe", "psk": "espresso42"})

    response = client.get("/api/wifi/log", params={"limit": 2})

    assert response.status_code == 200
    entries = response.json()["entries"]
    assert len(entries) == 2
    assert entries[0]["timestamp"] >= entries[1]["timestamp"]

    progress = client.get("/api/wifi/log", params={"category": "progress"}).json()["entries"]
    assert progress[0]["message"] == "New connection established!"
