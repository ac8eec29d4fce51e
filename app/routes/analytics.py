"""Historical analytics routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.config import HistoryWindow, get_settings
from app.routes.live import get_monitor
from app.schemas.analytics import HistorySummary
from app.services.crop_monitor import CropMonitor
from app.services.errors import FetchFailure
from app.services.history_aggregator import summarize_window

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, FetchFailure):
		return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="analytics failure")


@router.get("/{crop}/summary", response_model=HistorySummary)
async def get_history_summary(
	crop: str,
	window: HistoryWindow = Query(default=HistoryWindow.last_24h),
	monitor: CropMonitor = Depends(get_monitor),
) -> HistorySummary:
	crop = crop.strip().lower()
	try:
		if crop not in get_settings().supported_crops:
			raise LookupError(f"Crop {crop} not supported")
		return await summarize_window(monitor.store, crop, window)
	except Exception as exc:
		raise _map_error(exc) from exc
