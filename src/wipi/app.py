"""FastAPI application exposing the wireless management facade."""
from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from .config import WipiSettings, load_settings
from .connection import WeakCredentialError
from .facade import WipiFacade, create_facade
from .scanner import ScanFailure
from .version import APP_VERSION


class ConnectPayload(BaseModel):
    ssid: str = Field(..., min_length=1)
    psk: str


def create_app(
    settings: WipiSettings | None = None,
    *,
    facade: WipiFacade | None = None,
) -> FastAPI:
    app = FastAPI(title="wipi", version=APP_VERSION)

    logger = logging.getLogger(__name__)

    if facade is None:
        facade = create_facade(settings or load_settings())
    app.state.facade = facade

    @app.get("/api/wifi/status")
    async def get_status() -> dict[str, object | None]:
        status = await run_in_threadpool(facade.refresh_status)
        return status.to_dict()

    @app.post("/api/wifi/refresh")
    async def refresh_all() -> dict[str, object]:
        try:
            hubs = await facade.refresh_all()
        except ScanFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {
            "status": facade.status.to_dict(),
            "hubs": [hub.to_dict() for hub in hubs],
        }

    @app.get("/api/wifi/hubs")
    async def list_hubs(details: bool = False) -> dict[str, object]:
        records = facade.hub_details if details else facade.hubs
        return {"hubs": [hub.to_dict() for hub in records]}

    @app.post("/api/wifi/scan")
    async def scan_hubs() -> dict[str, object]:
        try:
            hubs = await facade.refresh_hubs()
        except ScanFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"hubs": [hub.to_dict() for hub in hubs]}

    @app.get("/api/wifi/internet")
    async def check_internet(target: str | None = None) -> dict[str, object]:
        reachable = await run_in_threadpool(facade.check_internet_reachability, target)
        return {"reachable": reachable}

    @app.post("/api/wifi/connect")
    async def connect(payload: ConnectPayload) -> dict[str, object | None]:
        if facade.busy:
            logger.info("Connection change to %s queued behind an active change", payload.ssid)
        try:
            result = await facade.connect(payload.ssid, payload.psk)
        except WeakCredentialError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return result.to_dict()

    @app.post("/api/wifi/clear")
    async def clear_connections() -> dict[str, object]:
        messages: list[str] = []
        removed = await run_in_threadpool(facade.clear_all_connections, messages.append)
        return {"removed": removed, "messages": messages}

    @app.get("/api/wifi/traffic")
    async def get_traffic(interface: str | None = None) -> dict[str, str]:
        counters = await run_in_threadpool(facade.get_traffic, interface)
        return counters.to_dict()

    @app.get("/api/wifi/log")
    async def get_log(limit: int = 50, category: str | None = None) -> dict[str, object]:
        entries = facade.event_log.tail(limit, category=category)
        return {"entries": [entry.to_dict() for entry in reversed(entries)]}

    return app


__all__ = ["ConnectPayload", "create_app"]
