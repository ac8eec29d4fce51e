"""Pydantic schemas for the live monitoring view."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.config import HistoryWindow
from app.models.enums import ClassificationEnum, SoilParameterEnum
from app.schemas.analytics import HistorySummary
from app.schemas.telemetry import Reading, ThresholdRule, normalize_crop

AdvisoryStatus = Literal["waiting", "ok", "attention"]
CatalogStatus = Literal["empty", "loaded", "error"]


class SelectionState(BaseModel):
	active_crop: str
	device_id: str | None = None
	persisted_crop: str | None = None


class CropSelectionUpdate(BaseModel):
	crop: str

	@field_validator("crop")
	@classmethod
	def validate_crop(cls, value: str) -> str:
		return normalize_crop(value)


class WindowUpdate(BaseModel):
	window: HistoryWindow


class ParameterFinding(BaseModel):
	parameter: SoilParameterEnum
	label: str
	classification: ClassificationEnum
	value: float
	unit: str
	val_min: float
	val_max: float
	description: str | None = None


class ParameterStatus(BaseModel):
	parameter: SoilParameterEnum
	label: str
	unit: str
	value: float | None = None
	classification: ClassificationEnum | None = None
	gauge_pct: float = 0.0


class Advisory(BaseModel):
	status: AdvisoryStatus
	crop_treatment: str
	alternative_crop: str
	findings: list[ParameterFinding] = Field(default_factory=list)
	recommended_crops: list[str] = Field(default_factory=list)


class ThresholdCatalogState(BaseModel):
	status: CatalogStatus
	crop: str | None = None
	rules: list[ThresholdRule] = Field(default_factory=list)


class LiveStateResponse(BaseModel):
	generated_at: datetime
	selection: SelectionState
	reading: Reading | None = None
	subscription_active: bool = False
	thresholds: ThresholdCatalogState
	parameters: list[ParameterStatus] = Field(default_factory=list)
	advisory: Advisory
	history: HistorySummary | None = None


class ReloadResponse(BaseModel):
	crop: str
	thresholds_loaded: bool
	reading_loaded: bool
	history_loaded: bool
