"""WebSocket live feed route."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["websocket"])

KEEPALIVE_SECONDS = 15.0


@router.websocket("/ws/live")
async def ws_live_feed(websocket: WebSocket) -> None:
	await websocket.accept()

	monitor = getattr(websocket.app.state, "monitor", None)
	if monitor is None:
		await websocket.send_json({"error": "monitor_unavailable"})
		await websocket.close(code=1011)
		return

	try:
		async with monitor.watch() as changes:
			await websocket.send_json(monitor.snapshot().model_dump(mode="json"))
			while True:
				try:
					await asyncio.wait_for(changes.get(), timeout=KEEPALIVE_SECONDS)
				except TimeoutError:
					await websocket.send_json({"event_type": "keepalive"})
					continue
				await websocket.send_json(monitor.snapshot().model_dump(mode="json"))
	except WebSocketDisconnect:
		return
