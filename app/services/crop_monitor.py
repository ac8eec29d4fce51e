"""Live monitoring engine: wires selection, feed, catalog, history and advisory."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog

from app.config import HistoryWindow
from app.schemas.analytics import HistorySummary
from app.schemas.live import (
	Advisory,
	LiveStateResponse,
	ReloadResponse,
	SelectionState,
	ThresholdCatalogState,
)
from app.services import advisory_engine
from app.services.alt_crop_rules import AltCropRuleTable
from app.services.history_aggregator import HistoryAggregator
from app.services.live_channel import SubscriptionFactory
from app.services.selection import SelectionController
from app.services.store import TelemetryStore
from app.services.telemetry_feed import TelemetryFeed
from app.services.threshold_catalog import ThresholdCatalog

logger = structlog.get_logger("soilsense.monitor")


class CropMonitor:
	"""Process-wide owner of the live view for the selected crop.

	``set_crop`` is the only mutator. It switches the selection synchronously
	and schedules the dependent reloads; each loader drops its own result if
	the crop changed while it was in flight.
	"""

	def __init__(
		self,
		store: TelemetryStore,
		subscription_factory: SubscriptionFactory,
		default_crop: str,
		history_window: HistoryWindow = HistoryWindow.last_24h,
	):
		self.store = store
		self.selection = SelectionController(store, default_crop)
		self.thresholds = ThresholdCatalog(store, self.selection, on_change=self._notify)
		self.alt_crops = AltCropRuleTable(store)
		self.feed = TelemetryFeed(store, self.selection, subscription_factory, on_change=self._notify)
		self.history = HistoryAggregator(store, self.selection, window=history_window, on_change=self._notify)
		self._tasks: set[asyncio.Task[Any]] = set()
		self._watchers: set[asyncio.Queue[int]] = set()
		self._version = 0
		self._running = False

	@property
	def running(self) -> bool:
		return self._running

	@property
	def version(self) -> int:
		return self._version

	# ── Lifecycle ───────────────────────────────────────────────────────────

	async def start(self) -> None:
		crop = await self.selection.bootstrap()
		await self.alt_crops.load()
		self._running = True
		logger.info("monitor_started", crop=crop, device_id=self.selection.device_id)
		await self._activate(crop)

	async def stop(self) -> None:
		self._running = False
		tasks = list(self._tasks)
		for task in tasks:
			task.cancel()
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)
		await self.feed.close()
		await self.selection.drain()
		logger.info("monitor_stopped", crop=self.selection.active_crop)

	async def wait_idle(self) -> None:
		"""Wait until every scheduled activation has finished."""
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	# ── Mutators ────────────────────────────────────────────────────────────

	def set_crop(self, crop: str) -> bool:
		changed = self.selection.set_crop(crop)
		if not changed:
			return False
		self.feed.reset(crop)
		self.history.reset(crop)
		self._notify()
		if self._running:
			self._spawn(self._activate(crop))
		return True

	async def reload(self) -> ReloadResponse:
		"""Reissue every load for the current crop."""
		await self.wait_idle()
		crop = self.selection.active_crop
		await self.alt_crops.load()
		if self._running and self.feed.subscribed_crop != crop:
			await self.feed.open(crop)
		thresholds_ok, reading_ok, history_ok = await asyncio.gather(
			self.thresholds.reload(crop),
			self.feed.reload(crop),
			self.history.reload(crop),
		)
		return ReloadResponse(
			crop=crop,
			thresholds_loaded=thresholds_ok,
			reading_loaded=reading_ok,
			history_loaded=history_ok,
		)

	async def set_window(self, window: HistoryWindow) -> bool:
		return await self.history.reload(self.selection.active_crop, window)

	# ── Accessors ───────────────────────────────────────────────────────────

	@property
	def advisory(self) -> Advisory:
		return advisory_engine.build_advisory(
			self.feed.current,
			self.thresholds.rules,
			self.alt_crops.rules,
		)

	@property
	def history_summary(self) -> HistorySummary | None:
		return self.history.summary

	def selection_state(self) -> SelectionState:
		return SelectionState(
			active_crop=self.selection.active_crop,
			device_id=self.selection.device_id,
			persisted_crop=self.selection.persisted_crop,
		)

	def threshold_state(self) -> ThresholdCatalogState:
		return ThresholdCatalogState(
			status=self.thresholds.state.value,
			crop=self.thresholds.crop,
			rules=list(self.thresholds.rules.values()),
		)

	def snapshot(self) -> LiveStateResponse:
		reading = self.feed.current
		rules = self.thresholds.rules
		return LiveStateResponse(
			generated_at=datetime.now(UTC),
			selection=self.selection_state(),
			reading=reading,
			subscription_active=self.feed.subscription_active,
			thresholds=self.threshold_state(),
			parameters=advisory_engine.parameter_statuses(reading, rules),
			advisory=advisory_engine.build_advisory(reading, rules, self.alt_crops.rules),
			history=self.history.summary,
		)

	@asynccontextmanager
	async def watch(self) -> AsyncIterator[asyncio.Queue[int]]:
		"""Queue receiving the state version after every change."""
		queue: asyncio.Queue[int] = asyncio.Queue(maxsize=1)
		self._watchers.add(queue)
		try:
			yield queue
		finally:
			self._watchers.discard(queue)

	# ── Internals ───────────────────────────────────────────────────────────

	async def _activate(self, crop: str) -> None:
		if not self.selection.is_current(crop):
			return
		await self.feed.open(crop)
		await asyncio.gather(
			self.thresholds.reload(crop),
			self.feed.reload(crop),
			self.history.reload(crop),
		)

	def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
		task = asyncio.create_task(coro)
		self._tasks.add(task)
		task.add_done_callback(self._on_task_done)

	def _on_task_done(self, task: asyncio.Task[Any]) -> None:
		self._tasks.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error("monitor_task_failed", error=str(exc), exc_info=exc)

	def _notify(self) -> None:
		self._version += 1
		for queue in self._watchers:
			if queue.full():
				queue.get_nowait()
			queue.put_nowait(self._version)
