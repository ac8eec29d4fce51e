"""Pydantic schemas for telemetry records exchanged with the store and the live channel."""

from __future__ import annotations

import math
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator

from app.config import get_settings
from app.models.enums import ReadingEventTypeEnum, SoilParameterEnum


def as_utc(value: datetime) -> datetime:
	"""Naive timestamps are taken to be UTC; aware ones are converted to UTC."""
	if value.tzinfo is None:
		return value.replace(tzinfo=UTC)
	return value.astimezone(UTC)


def normalize_crop(value: str) -> str:
	"""Lower-case and strip ``value``; raises ValueError for an unsupported crop."""
	crop = value.strip().lower()
	supported = get_settings().supported_crops
	if crop not in supported:
		raise ValueError(f"unsupported crop '{value}'; expected one of {', '.join(supported)}")
	return crop


class SoilValues(BaseModel):
	"""The seven soil channels; any of them may be missing from a sample."""

	model_config = ConfigDict(from_attributes=True, frozen=True)

	ph: float | None = None
	moist_pct: float | None = None
	temp_c: float | None = None
	ec_ms: float | None = None
	n_mgkg: float | None = None
	p_mgkg: float | None = None
	k_mgkg: float | None = None

	def value_of(self, parameter: SoilParameterEnum) -> float | None:
		value = getattr(self, parameter.value)
		if value is None or math.isnan(value):
			return None
		return value


class Reading(SoilValues):
	device_id: str
	crop: str
	updated_at: datetime

	@field_validator("updated_at")
	@classmethod
	def updated_at_utc(cls, value: datetime) -> datetime:
		return as_utc(value)


class HistoricalBucket(SoilValues):
	bucket_start: datetime
	crop: str

	@field_validator("bucket_start")
	@classmethod
	def bucket_start_utc(cls, value: datetime) -> datetime:
		return as_utc(value)


class ReadingEvent(BaseModel):
	"""Payload published on a crop's live channel whenever ``telem_rt`` changes."""

	model_config = ConfigDict(frozen=True)

	event_type: ReadingEventTypeEnum
	record: Reading

	@property
	def crop(self) -> str:
		return self.record.crop


class ThresholdRule(BaseModel):
	model_config = ConfigDict(from_attributes=True, frozen=True)

	crop: str
	param: str
	val_min: float
	val_max: float
	unit: str = ""
	description: str | None = None


class AltCropRule(BaseModel):
	model_config = ConfigDict(from_attributes=True, frozen=True)

	soil_param: str
	reading_range: str
	recommended_crop: str


class DeviceInfo(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	name: str
	cur_crop: str | None = None
