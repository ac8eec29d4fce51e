"""Reading ingestion: upserts the latest row and notifies the live channel."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.enums import ReadingEventTypeEnum, SoilParameterEnum
from app.models.telemetry import Device, LatestReading
from app.schemas.ingest import IngestReceipt, ReadingIn
from app.schemas.telemetry import Reading, ReadingEvent
from app.services.live_channel import publish_reading_event

logger = structlog.get_logger("soilsense.ingest")


class ReadingIngestService:
	def __init__(self, db: AsyncSession, redis_client: Redis | None = None):
		self.db = db
		self.redis_client = redis_client

	async def ingest_reading(self, payload: ReadingIn) -> IngestReceipt:
		device = await self._require_device(payload.device_id)
		crop = payload.crop or device.cur_crop
		if not crop:
			raise ValueError(f"device {device.id} has no active crop and none was supplied")

		updated_at = payload.timestamp or datetime.now(UTC)
		values = {parameter.value: getattr(payload, parameter.value) for parameter in SoilParameterEnum}

		row = await self.db.execute(
			select(LatestReading).where(
				LatestReading.device_id == device.id,
				LatestReading.crop == crop,
			)
		)
		record = row.scalar_one_or_none()
		if record is None:
			event_type = ReadingEventTypeEnum.insert
			record = LatestReading(device_id=device.id, crop=crop, updated_at=updated_at, **values)
			self.db.add(record)
		else:
			event_type = ReadingEventTypeEnum.update
			record.updated_at = updated_at
			for key, value in values.items():
				setattr(record, key, value)
		await self.db.flush()

		reading = Reading(device_id=device.id, crop=crop, updated_at=updated_at, **values)
		published = await self._publish(ReadingEvent(event_type=event_type, record=reading))
		return IngestReceipt(
			device_id=device.id,
			crop=crop,
			event_type=event_type,
			updated_at=updated_at,
			published=published,
		)

	async def _require_device(self, device_id: str) -> Device:
		row = await self.db.execute(select(Device).where(Device.id == device_id))
		device = row.scalar_one_or_none()
		if device is None:
			raise LookupError(f"Device {device_id} not found")
		return device

	async def _publish(self, event: ReadingEvent) -> bool:
		if self.redis_client is None:
			return False
		try:
			await publish_reading_event(self.redis_client, get_settings().live_channel_prefix, event)
		except (RedisError, OSError) as exc:
			logger.warning("reading_publish_failed", crop=event.crop, error=str(exc))
			return False
		return True
