"""Windowed summary statistics over pre-aggregated history buckets."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime

import structlog

from app.config import HistoryWindow
from app.models.enums import SoilParameterEnum
from app.schemas.analytics import HistorySummary, ParameterStats, SeriesPoint
from app.schemas.telemetry import HistoricalBucket
from app.services.advisory_engine import PARAMETER_INFO
from app.services.errors import FetchFailure
from app.services.selection import SelectionController
from app.services.store import TelemetryStore

logger = structlog.get_logger("soilsense.history_aggregator")


def parameter_stats(buckets: Sequence[HistoricalBucket], parameter: SoilParameterEnum) -> ParameterStats:
	"""Reduce one parameter over ``buckets`` (ascending by ``bucket_start``).

	``last`` is the value of the chronologically last bucket, which may be
	None even when earlier buckets carry values.
	"""
	label, unit = PARAMETER_INFO[parameter]
	values = [value for value in (bucket.value_of(parameter) for bucket in buckets) if value is not None]
	if not values:
		return ParameterStats(parameter=parameter, label=label, unit=unit)

	return ParameterStats(
		parameter=parameter,
		label=label,
		unit=unit,
		min=min(values),
		max=max(values),
		avg=sum(values) / len(values),
		last=buckets[-1].value_of(parameter),
		sample_count=len(values),
	)


def summarize(
	buckets: Sequence[HistoricalBucket],
	crop: str,
	window: HistoryWindow,
	since: datetime,
) -> HistorySummary:
	ordered = sorted(buckets, key=lambda bucket: bucket.bucket_start)
	series = [
		SeriesPoint(
			bucket_start=bucket.bucket_start,
			**{parameter.value: bucket.value_of(parameter) for parameter in SoilParameterEnum},
		)
		for bucket in ordered
	]
	return HistorySummary(
		crop=crop,
		window=window,
		since=since,
		generated_at=datetime.now(UTC),
		bucket_count=len(ordered),
		stats=[parameter_stats(ordered, parameter) for parameter in SoilParameterEnum],
		series=series,
	)


async def summarize_window(store: TelemetryStore, crop: str, window: HistoryWindow) -> HistorySummary:
	"""Fetch and summarize a window for any crop; raises ``FetchFailure``."""
	since = datetime.now(UTC) - window.duration
	buckets = await store.fetch_buckets(crop, since)
	foreign = [bucket for bucket in buckets if bucket.crop != crop]
	if foreign:
		logger.warning("history_foreign_buckets_dropped", crop=crop, count=len(foreign))
		buckets = [bucket for bucket in buckets if bucket.crop == crop]
	return summarize(buckets, crop, window, since)


class HistoryAggregator:
	"""Summary for the active crop, refreshed whenever the crop or window changes."""

	def __init__(
		self,
		store: TelemetryStore,
		selection: SelectionController,
		window: HistoryWindow = HistoryWindow.last_24h,
		on_change: Callable[[], None] | None = None,
	):
		self.store = store
		self.selection = selection
		self.window = window
		self.on_change = on_change
		self._summary: HistorySummary | None = None
		self._load_seq = 0

	@property
	def summary(self) -> HistorySummary | None:
		summary = self._summary
		if summary is None or not self.selection.is_current(summary.crop):
			return None
		return summary

	def reset(self, crop: str) -> None:
		if self._summary is not None and self._summary.crop != crop:
			self._summary = None
			self._notify()

	async def reload(self, crop: str, window: HistoryWindow | None = None) -> bool:
		if window is not None:
			self.window = window
		window = self.window
		self._load_seq += 1
		token = self._load_seq

		try:
			summary = await summarize_window(self.store, crop, window)
		except FetchFailure as exc:
			logger.warning("history_fetch_failed", crop=crop, window=window.value, error=str(exc))
			return False

		if token != self._load_seq or not self.selection.is_current(crop):
			logger.debug("history_load_discarded", crop=crop, active_crop=self.selection.active_crop)
			return False

		self._summary = summary
		self._notify()
		return True

	def _notify(self) -> None:
		if self.on_change is not None:
			self.on_change()
