"""Active-crop ownership and best-effort persistence of the device preference."""

from __future__ import annotations

import asyncio

import structlog

from app.services.errors import FetchFailure, StalePreferenceWriteFailure
from app.services.store import TelemetryStore

logger = structlog.get_logger("soilsense.selection")


class SelectionController:
	"""Single owner of the active crop.

	Every dependent loader captures the crop it was issued for and calls
	``is_current`` when its result arrives; a mismatch means the result is
	discarded.
	"""

	def __init__(self, store: TelemetryStore, default_crop: str):
		self.store = store
		self._crop = default_crop
		self._device_id: str | None = None
		self._persisted_crop: str | None = None
		self._write_lock = asyncio.Lock()
		self._pending_writes: set[asyncio.Task[None]] = set()

	@property
	def active_crop(self) -> str:
		return self._crop

	@property
	def device_id(self) -> str | None:
		return self._device_id

	@property
	def persisted_crop(self) -> str | None:
		return self._persisted_crop

	def is_current(self, crop: str) -> bool:
		return crop == self._crop

	async def bootstrap(self) -> str:
		"""Adopt the device's persisted crop, if there is one."""
		try:
			device = await self.store.fetch_device()
		except FetchFailure as exc:
			logger.warning("device_fetch_failed", error=str(exc), crop=self._crop)
			return self._crop

		if device is None:
			logger.info("device_missing", crop=self._crop)
			return self._crop

		self._device_id = device.id
		self._persisted_crop = device.cur_crop
		if device.cur_crop:
			self._crop = device.cur_crop
		return self._crop

	def set_crop(self, crop: str) -> bool:
		"""Switch the active crop; returns False when ``crop`` is already active."""
		if crop == self._crop:
			return False

		previous, self._crop = self._crop, crop
		logger.info("crop_selected", crop=crop, previous=previous)

		if self._device_id is not None:
			task = asyncio.create_task(self._persist_latest())
			self._pending_writes.add(task)
			task.add_done_callback(self._pending_writes.discard)
		return True

	async def drain(self) -> None:
		"""Wait for outstanding preference writes."""
		if self._pending_writes:
			await asyncio.gather(*self._pending_writes, return_exceptions=True)

	async def _persist_latest(self) -> None:
		async with self._write_lock:
			device_id = self._device_id
			crop = self._crop
			if device_id is None or crop == self._persisted_crop:
				return
			try:
				await self.store.update_crop_preference(device_id, crop)
			except StalePreferenceWriteFailure as exc:
				logger.warning("crop_preference_write_failed", crop=crop, device_id=device_id, error=str(exc))
				return
			self._persisted_crop = crop
