"""Query interface over the telemetry tables used by the monitoring core."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.telemetry import (
	AltCropRecommendation,
	CropThreshold,
	Device,
	HistoryLogEntry,
	LatestReading,
	ReadingBucket,
)
from app.schemas.analytics import HistoryLogRow
from app.schemas.telemetry import (
	AltCropRule,
	DeviceInfo,
	HistoricalBucket,
	Reading,
	ThresholdRule,
)
from app.services.errors import FetchFailure, StalePreferenceWriteFailure

_TRANSPORT_ERRORS = (SQLAlchemyError, OSError)

# Sortable history log columns, keyed by their view column name.
HISTORY_LOG_SORT_COLUMNS = {
	"bkt_30m": HistoryLogEntry.bucket_start,
	"crop_text": HistoryLogEntry.crop_text,
	"device_name": HistoryLogEntry.device_name,
	"ph": HistoryLogEntry.ph,
	"moist_pct": HistoryLogEntry.moist_pct,
	"temp_c": HistoryLogEntry.temp_c,
	"ec_ms": HistoryLogEntry.ec_ms,
	"n_mgkg": HistoryLogEntry.n_mgkg,
	"p_mgkg": HistoryLogEntry.p_mgkg,
	"k_mgkg": HistoryLogEntry.k_mgkg,
}


class TelemetryStore(Protocol):
	"""Everything the monitoring core reads from, or writes to, storage."""

	async def fetch_device(self) -> DeviceInfo | None: ...

	async def fetch_thresholds(self, crop: str) -> list[ThresholdRule]: ...

	async def fetch_alt_crop_rules(self) -> list[AltCropRule]: ...

	async def fetch_latest_reading(self, crop: str) -> Reading | None: ...

	async def fetch_buckets(self, crop: str, since: datetime) -> list[HistoricalBucket]: ...

	async def fetch_history_log(
		self,
		since: datetime,
		search: str | None,
		sort: str,
		ascending: bool,
		limit: int | None,
	) -> tuple[list[HistoryLogRow], int]: ...

	async def update_crop_preference(self, device_id: str, crop: str) -> None: ...


class SqlTelemetryStore:
	"""SQLAlchemy-backed store; opens one short-lived session per call.

	Transport and query errors surface as ``FetchFailure`` (reads) or
	``StalePreferenceWriteFailure`` (the preference write).
	"""

	def __init__(self, session_factory: Callable[[], AsyncSession]):
		self.session_factory = session_factory

	async def fetch_device(self) -> DeviceInfo | None:
		stmt = select(Device).order_by(Device.created_at.asc()).limit(1)
		try:
			async with self.session_factory() as session:
				row = await session.execute(stmt)
				device = row.scalar_one_or_none()
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("device", str(exc)) from exc
		return DeviceInfo.model_validate(device) if device is not None else None

	async def fetch_thresholds(self, crop: str) -> list[ThresholdRule]:
		stmt = select(CropThreshold).where(CropThreshold.crop == crop)
		try:
			async with self.session_factory() as session:
				rows = await session.execute(stmt)
				records = list(rows.scalars().all())
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("thresholds", str(exc)) from exc
		return [ThresholdRule.model_validate(record) for record in records]

	async def fetch_alt_crop_rules(self) -> list[AltCropRule]:
		stmt = select(AltCropRecommendation).order_by(AltCropRecommendation.id.asc())
		try:
			async with self.session_factory() as session:
				rows = await session.execute(stmt)
				records = list(rows.scalars().all())
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("alt_crop_rules", str(exc)) from exc
		return [AltCropRule.model_validate(record) for record in records]

	async def fetch_latest_reading(self, crop: str) -> Reading | None:
		stmt = (
			select(LatestReading)
			.where(LatestReading.crop == crop)
			.order_by(LatestReading.updated_at.desc())
			.limit(1)
		)
		try:
			async with self.session_factory() as session:
				row = await session.execute(stmt)
				record = row.scalar_one_or_none()
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("latest_reading", str(exc)) from exc
		return Reading.model_validate(record) if record is not None else None

	async def fetch_buckets(self, crop: str, since: datetime) -> list[HistoricalBucket]:
		stmt = (
			select(ReadingBucket)
			.where(ReadingBucket.crop == crop, ReadingBucket.bucket_start >= since)
			.order_by(ReadingBucket.bucket_start.asc())
		)
		try:
			async with self.session_factory() as session:
				rows = await session.execute(stmt)
				records = list(rows.scalars().all())
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("history", str(exc)) from exc
		return [HistoricalBucket.model_validate(record) for record in records]

	async def update_crop_preference(self, device_id: str, crop: str) -> None:
		stmt = update(Device).where(Device.id == device_id).values(cur_crop=crop)
		try:
			async with self.session_factory() as session:
				await session.execute(stmt)
				await session.commit()
		except _TRANSPORT_ERRORS as exc:
			raise StalePreferenceWriteFailure("crop_preference", str(exc)) from exc

	async def fetch_history_log(
		self,
		since: datetime,
		search: str | None,
		sort: str,
		ascending: bool,
		limit: int | None,
	) -> tuple[list[HistoryLogRow], int]:
		"""Rows of the history log view since ``since`` and the exact matching count.

		``search`` is a case-insensitive substring match on ``crop_text``. The
		count ignores ``limit``.
		"""
		sort_column = HISTORY_LOG_SORT_COLUMNS.get(sort)
		if sort_column is None:
			raise ValueError(f"cannot sort history log by '{sort}'")

		filters = [HistoryLogEntry.bucket_start >= since]
		if search:
			filters.append(HistoryLogEntry.crop_text.ilike(f"%{search}%"))

		count_stmt = select(func.count()).select_from(HistoryLogEntry).where(*filters)
		rows_stmt = (
			select(HistoryLogEntry)
			.where(*filters)
			.order_by(sort_column.asc() if ascending else sort_column.desc(), HistoryLogEntry.id.asc())
		)
		if limit is not None:
			rows_stmt = rows_stmt.limit(limit)

		try:
			async with self.session_factory() as session:
				total = (await session.execute(count_stmt)).scalar_one()
				rows = await session.execute(rows_stmt)
				records = list(rows.scalars().all())
		except _TRANSPORT_ERRORS as exc:
			raise FetchFailure("history_log", str(exc)) from exc
		return [HistoryLogRow.model_validate(record) for record in records], total
