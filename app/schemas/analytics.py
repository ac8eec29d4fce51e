"""Pydantic schemas for windowed history summaries."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.config import HistoryWindow
from app.models.enums import SoilParameterEnum
from app.schemas.telemetry import SoilValues, as_utc


class ParameterStats(BaseModel):
	"""min/max/avg/last for one parameter; all four are None when no samples exist."""

	parameter: SoilParameterEnum
	label: str
	unit: str
	min: float | None = None
	max: float | None = None
	avg: float | None = None
	last: float | None = None
	sample_count: int = 0


class SeriesPoint(SoilValues):
	bucket_start: datetime


class HistorySummary(BaseModel):
	crop: str
	window: HistoryWindow
	since: datetime
	generated_at: datetime
	bucket_count: int = 0
	stats: list[ParameterStats] = Field(default_factory=list)
	series: list[SeriesPoint] = Field(default_factory=list)


class HistoryLogRow(SoilValues):
	"""One bucketed row of the history log, with the device it came from."""

	id: int
	bucket_start: datetime
	device_id: str | None = None
	crop: str | None = None
	crop_text: str | None = None
	device_name: str | None = None
	src_created_at: datetime | None = None

	@field_validator("bucket_start")
	@classmethod
	def bucket_start_utc(cls, value: datetime) -> datetime:
		return as_utc(value)


class HistoryLogPage(BaseModel):
	"""Filtered rows plus the exact number of rows matching the filters, ignoring ``limit``."""

	window: HistoryWindow
	since: datetime
	search: str | None = None
	sort: str
	order: Literal["asc", "desc"]
	total: int
	rows: list[HistoryLogRow] = Field(default_factory=list)
