"""Per-crop threshold rules with last-known-good retention."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from types import MappingProxyType

import structlog

from app.schemas.telemetry import ThresholdRule
from app.services.errors import FetchFailure
from app.services.selection import SelectionController
from app.services.store import TelemetryStore

logger = structlog.get_logger("soilsense.threshold_catalog")


class CatalogState(StrEnum):
	empty = "empty"
	loaded = "loaded"
	error = "error"


class ThresholdCatalog:
	"""Holds the ``param -> rule`` mapping for the most recently loaded crop.

	A failed reload moves the catalog to ``error`` but keeps the previous rules
	in place, so advisories keep working off the last good table.
	"""

	def __init__(
		self,
		store: TelemetryStore,
		selection: SelectionController,
		on_change: Callable[[], None] | None = None,
	):
		self.store = store
		self.selection = selection
		self.on_change = on_change
		self._state = CatalogState.empty
		self._crop: str | None = None
		self._rules: dict[str, ThresholdRule] = {}
		self._load_seq = 0
		self.last_error: str | None = None

	@property
	def state(self) -> CatalogState:
		return self._state

	@property
	def crop(self) -> str | None:
		return self._crop

	@property
	def rules(self) -> Mapping[str, ThresholdRule]:
		return MappingProxyType(self._rules)

	def lookup(self, param: str) -> ThresholdRule | None:
		return self._rules.get(param)

	async def reload(self, crop: str) -> bool:
		self._load_seq += 1
		token = self._load_seq

		try:
			rows = await self.store.fetch_thresholds(crop)
		except FetchFailure as exc:
			if token != self._load_seq or not self.selection.is_current(crop):
				return False
			self._state = CatalogState.error
			self.last_error = str(exc)
			logger.warning(
				"threshold_fetch_failed",
				crop=crop,
				error=str(exc),
				kept_crop=self._crop,
				kept_rules=len(self._rules),
			)
			self._notify()
			return False

		if token != self._load_seq or not self.selection.is_current(crop):
			logger.debug("threshold_load_discarded", crop=crop, active_crop=self.selection.active_crop)
			return False

		rules: dict[str, ThresholdRule] = {}
		for row in rows:
			if row.param in rules:
				logger.warning("threshold_rule_duplicate", crop=crop, param=row.param)
			rules[row.param] = row

		self._rules = rules
		self._crop = crop
		self._state = CatalogState.loaded
		self.last_error = None
		self._notify()
		return True

	def _notify(self) -> None:
		if self.on_change is not None:
			self.on_change()
