"""Searchable, sortable log of bucketed readings over a trailing window."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

import structlog

from app.config import HistoryWindow
from app.schemas.analytics import HistoryLogPage
from app.services.store import HISTORY_LOG_SORT_COLUMNS, TelemetryStore

logger = structlog.get_logger("soilsense.history_log")

DEFAULT_SORT = "bkt_30m"


async def load_history_log(
	store: TelemetryStore,
	window: HistoryWindow,
	search: str | None = None,
	sort: str = DEFAULT_SORT,
	order: Literal["asc", "desc"] = "desc",
	limit: int | None = None,
	now: datetime | None = None,
) -> HistoryLogPage:
	"""Rows since ``now - window`` whose ``crop_text`` contains ``search``.

	Raises ValueError when ``sort`` is not a sortable column or ``limit`` is
	not positive. Store failures propagate as ``FetchFailure``.
	"""
	if sort not in HISTORY_LOG_SORT_COLUMNS:
		raise ValueError(f"cannot sort history log by '{sort}'; expected one of {', '.join(HISTORY_LOG_SORT_COLUMNS)}")
	if limit is not None and limit < 1:
		raise ValueError("limit must be a positive integer")

	term = search.strip() if search else ""
	since = (now or datetime.now(UTC)) - window.duration
	rows, total = await store.fetch_history_log(
		since,
		term or None,
		sort,
		order == "asc",
		limit,
	)
	logger.debug("history_log_loaded", window=window.value, search=term, sort=sort, order=order, total=total)
	return HistoryLogPage(
		window=window,
		since=since,
		search=term or None,
		sort=sort,
		order=order,
		total=total,
		rows=rows,
	)
