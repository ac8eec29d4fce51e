"""Current reading for the active crop, merged from snapshot loads and live events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from app.schemas.telemetry import Reading, ReadingEvent
from app.services.errors import FetchFailure, SubscriptionFailure
from app.services.live_channel import LiveSubscription, SubscriptionFactory
from app.services.selection import SelectionController
from app.services.store import TelemetryStore

logger = structlog.get_logger("soilsense.telemetry_feed")


class TelemetryFeed:
	"""Reconciles two sources into a single current reading.

	The snapshot load seeds the value; live events replace it whenever they
	arrive for the active crop. A snapshot never overwrites a reading with a
	strictly later ``updated_at``. At most one subscription is open, and it
	is always scoped to a single crop.
	"""

	def __init__(
		self,
		store: TelemetryStore,
		selection: SelectionController,
		subscription_factory: SubscriptionFactory,
		on_change: Callable[[], None] | None = None,
	):
		self.store = store
		self.selection = selection
		self.subscription_factory = subscription_factory
		self.on_change = on_change
		self._current: Reading | None = None
		self._subscription: LiveSubscription | None = None
		self._subscribed_crop: str | None = None
		self._lifecycle_lock = asyncio.Lock()
		self._load_seq = 0

	@property
	def current(self) -> Reading | None:
		reading = self._current
		if reading is None or not self.selection.is_current(reading.crop):
			return None
		return reading

	@property
	def subscribed_crop(self) -> str | None:
		return self._subscribed_crop

	@property
	def subscription_active(self) -> bool:
		return self._subscription is not None and self._subscription.active

	def reset(self, crop: str) -> None:
		"""Drop a current reading that does not belong to ``crop``."""
		if self._current is not None and self._current.crop != crop:
			self._current = None
			self._notify()

	async def reload(self, crop: str) -> bool:
		"""Fetch the latest stored reading for ``crop`` and seed it if still relevant."""
		self._load_seq += 1
		token = self._load_seq

		try:
			snapshot = await self.store.fetch_latest_reading(crop)
		except FetchFailure as exc:
			logger.warning("snapshot_fetch_failed", crop=crop, error=str(exc))
			return False

		if token != self._load_seq or not self.selection.is_current(crop):
			logger.debug("snapshot_discarded", crop=crop, active_crop=self.selection.active_crop)
			return False
		if snapshot is None:
			return True
		if snapshot.crop != crop:
			logger.warning("snapshot_crop_mismatch", crop=crop, snapshot_crop=snapshot.crop)
			return False

		current = self._current
		if current is not None and current.crop == crop and current.updated_at > snapshot.updated_at:
			logger.debug("snapshot_superseded_by_live", crop=crop)
			return True

		self._current = snapshot
		self._notify()
		return True

	async def open(self, crop: str) -> bool:
		"""Replace any open subscription with one scoped to ``crop``."""
		async with self._lifecycle_lock:
			await self._close_locked()
			if not self.selection.is_current(crop):
				return False

			subscription: LiveSubscription | None = None

			def handle(event: ReadingEvent) -> None:
				self._handle_event(subscription, event)

			subscription = self.subscription_factory(crop, handle)
			try:
				await subscription.open()
			except SubscriptionFailure as exc:
				logger.warning("live_subscription_failed", crop=crop, error=str(exc))
				await subscription.close()
				return False
			except BaseException:
				await subscription.close()
				raise

			self._subscription = subscription
			self._subscribed_crop = crop
			self._notify()
			return True

	async def close(self) -> None:
		"""Tear down the open subscription; a no-op when none is open."""
		async with self._lifecycle_lock:
			await self._close_locked()

	async def _close_locked(self) -> None:
		subscription, self._subscription = self._subscription, None
		self._subscribed_crop = None
		if subscription is not None:
			await subscription.close()

	def _handle_event(self, origin: LiveSubscription | None, event: ReadingEvent) -> None:
		if origin is None or origin is not self._subscription:
			logger.debug("reading_event_discarded", crop=event.crop, reason="subscription_closed")
			return
		if event.crop != self._subscribed_crop or not self.selection.is_current(event.crop):
			logger.debug("reading_event_discarded", crop=event.crop, reason="crop_mismatch")
			return
		self._current = event.record
		self._notify()

	def _notify(self) -> None:
		if self.on_change is not None:
			self.on_change()
