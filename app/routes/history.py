"""History log routes."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.config import HistoryWindow
from app.routes.live import get_monitor
from app.schemas.analytics import HistoryLogPage
from app.services.crop_monitor import CropMonitor
from app.services.errors import FetchFailure
from app.services.history_log import DEFAULT_SORT, load_history_log

router = APIRouter(prefix="/history", tags=["history"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, FetchFailure):
		return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="history log failure")


@router.get("/log", response_model=HistoryLogPage)
async def get_history_log(
	window: HistoryWindow = Query(default=HistoryWindow.last_24h),
	search: str | None = Query(default=None, max_length=64),
	sort: str = Query(default=DEFAULT_SORT),
	order: Literal["asc", "desc"] = Query(default="desc"),
	limit: int | None = Query(default=None, ge=1),
	monitor: CropMonitor = Depends(get_monitor),
) -> HistoryLogPage:
	try:
		return await load_history_log(monitor.store, window, search, sort, order, limit)
	except Exception as exc:
		raise _map_error(exc) from exc
