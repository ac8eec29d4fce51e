"""Live monitoring routes: current state, crop selection, manual reload."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.schemas.analytics import HistorySummary
from app.schemas.live import (
	Advisory,
	CropSelectionUpdate,
	LiveStateResponse,
	ReloadResponse,
	SelectionState,
	WindowUpdate,
)
from app.services.crop_monitor import CropMonitor

router = APIRouter(prefix="/live", tags=["live"])


def get_monitor(request: Request) -> CropMonitor:
	monitor = getattr(request.app.state, "monitor", None)
	if monitor is None:
		raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="monitor unavailable")
	return monitor


@router.get("", response_model=LiveStateResponse)
async def get_live_state(monitor: CropMonitor = Depends(get_monitor)) -> LiveStateResponse:
	return monitor.snapshot()


@router.put("/crop", response_model=SelectionState)
async def select_crop(
	payload: CropSelectionUpdate,
	monitor: CropMonitor = Depends(get_monitor),
) -> SelectionState:
	monitor.set_crop(payload.crop)
	return monitor.selection_state()


@router.get("/advisory", response_model=Advisory)
async def get_advisory(monitor: CropMonitor = Depends(get_monitor)) -> Advisory:
	return monitor.advisory


@router.get("/history", response_model=HistorySummary | None)
async def get_live_history(monitor: CropMonitor = Depends(get_monitor)) -> HistorySummary | None:
	return monitor.history_summary


@router.put("/window", response_model=HistorySummary | None)
async def set_history_window(
	payload: WindowUpdate,
	monitor: CropMonitor = Depends(get_monitor),
) -> HistorySummary | None:
	await monitor.set_window(payload.window)
	return monitor.history_summary


@router.post("/reload", response_model=ReloadResponse)
async def reload_live_state(monitor: CropMonitor = Depends(get_monitor)) -> ReloadResponse:
	return await monitor.reload()
