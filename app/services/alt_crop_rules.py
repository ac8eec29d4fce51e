"""Alternative-crop reference table, loaded once per process."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from app.schemas.telemetry import AltCropRule
from app.services.errors import FetchFailure
from app.services.store import TelemetryStore

logger = structlog.get_logger("soilsense.alt_crop_rules")


class AltCropRuleTable:
	def __init__(self, store: TelemetryStore):
		self.store = store
		self._rules: tuple[AltCropRule, ...] = ()
		self._loaded = False

	@property
	def loaded(self) -> bool:
		return self._loaded

	@property
	def rules(self) -> Sequence[AltCropRule]:
		return self._rules

	async def load(self) -> bool:
		if self._loaded:
			return True
		try:
			rows = await self.store.fetch_alt_crop_rules()
		except FetchFailure as exc:
			logger.warning("alt_crop_rules_fetch_failed", error=str(exc))
			return False
		self._rules = tuple(rows)
		self._loaded = True
		logger.info("alt_crop_rules_loaded", count=len(self._rules))
		return True

	def lookup(self, soil_param: str, reading_range: str) -> AltCropRule | None:
		return find_alt_crop_rule(self._rules, soil_param, reading_range)


def find_alt_crop_rule(
	rules: Sequence[AltCropRule],
	soil_param: str,
	reading_range: str,
) -> AltCropRule | None:
	for rule in rules:
		if rule.soil_param == soil_param and rule.reading_range == reading_range:
			return rule
	return None
