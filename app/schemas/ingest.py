"""Pydantic schemas for reading ingestion payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.enums import ReadingEventTypeEnum
from app.schemas.telemetry import as_utc, normalize_crop


class ReadingIn(BaseModel):
	device_id: str = Field(min_length=1)
	crop: str | None = None
	timestamp: datetime | None = None
	ph: float | None = None
	moist_pct: float | None = None
	temp_c: float | None = None
	ec_ms: float | None = None
	n_mgkg: float | None = None
	p_mgkg: float | None = None
	k_mgkg: float | None = None

	@field_validator("crop")
	@classmethod
	def validate_crop(cls, value: str | None) -> str | None:
		return normalize_crop(value) if value is not None else None

	@field_validator("timestamp")
	@classmethod
	def timestamp_utc(cls, value: datetime | None) -> datetime | None:
		return as_utc(value) if value is not None else None


class IngestReceipt(BaseModel):
	device_id: str
	crop: str
	event_type: ReadingEventTypeEnum
	updated_at: datetime
	published: bool = False
