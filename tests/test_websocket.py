from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi.testclient import TestClient

from app.main import app
from app.services.crop_monitor import CropMonitor
from conftest import FakeStore, FakeSubscriptionFactory


@asynccontextmanager
async def _noop_lifespan(_: Any):
    yield


def test_websocket_live_feed_sends_initial_snapshot() -> None:
    store = FakeStore()
    app.state.monitor = CropMonitor(store, FakeSubscriptionFactory(), default_crop="okra")

    original_lifespan = app.router.lifespan_context
    app.router.lifespan_context = _noop_lifespan
    try:
        with TestClient(app) as client:
            with client.websocket_connect("/ws/live") as websocket:
                payload = websocket.receive_json()
                assert payload["selection"]["active_crop"] == "okra"
                assert payload["reading"] is None
                assert payload["advisory"]["status"] == "waiting"
                assert payload["thresholds"]["status"] == "empty"
    finally:
        app.router.lifespan_context = original_lifespan
        app.state.monitor = None


def test_websocket_without_monitor_returns_error() -> None:
    app.state.monitor = None

    original_lifespan = app.router.lifespan_context
    app.router.lifespan_context = _noop_lifespan
    try:
        with TestClient(app) as client:
            with client.websocket_connect("/ws/live") as websocket:
                payload = websocket.receive_json()
                assert payload["error"] == "monitor_unavailable"
    finally:
        app.router.lifespan_context = original_lifespan
