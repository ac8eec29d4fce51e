"""Shared pytest fixtures — in-memory store, fake pub/sub, async test client."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.database import get_db
from app.main import app
from app.models.enums import ReadingEventTypeEnum
from app.schemas.analytics import HistoryLogRow
from app.schemas.telemetry import (
	AltCropRule,
	DeviceInfo,
	HistoricalBucket,
	Reading,
	ReadingEvent,
	ThresholdRule,
)
from app.services.crop_monitor import CropMonitor
from app.services.errors import FetchFailure, StalePreferenceWriteFailure, SubscriptionFailure

BASE_TIME = datetime(2026, 10, 1, 8, 0, tzinfo=UTC)


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()
		self.flush = AsyncMock()
		self.add = MagicMock()


class FakeStore:
	"""In-memory ``TelemetryStore`` with per-call gates and injectable failures."""

	def __init__(self) -> None:
		self.device: DeviceInfo | None = None
		self.thresholds: dict[str, list[ThresholdRule]] = {}
		self.alt_rules: list[AltCropRule] = []
		self.latest: dict[str, Reading] = {}
		self.buckets: dict[str, list[HistoricalBucket]] = {}
		self.history_log: list[HistoryLogRow] = []
		self.history_log_queries: list[tuple[datetime, str | None, str, bool, int | None]] = []
		self.failing: set[str] = set()
		self.gates: dict[tuple[str, str | None], asyncio.Event] = {}
		self.calls: list[tuple[str, str | None]] = []
		self.preference_writes: list[tuple[str, str]] = []

	def hold(self, source: str, crop: str | None = None) -> asyncio.Event:
		"""Block calls for ``(source, crop)`` until the returned event is set."""
		gate = asyncio.Event()
		self.gates[(source, crop)] = gate
		return gate

	async def _enter(self, source: str, crop: str | None = None) -> None:
		self.calls.append((source, crop))
		gate = self.gates.get((source, crop))
		if gate is not None:
			await gate.wait()
		if source in self.failing:
			raise FetchFailure(source, "store unreachable")

	async def fetch_device(self) -> DeviceInfo | None:
		await self._enter("device")
		return self.device

	async def fetch_thresholds(self, crop: str) -> list[ThresholdRule]:
		await self._enter("thresholds", crop)
		return list(self.thresholds.get(crop, []))

	async def fetch_alt_crop_rules(self) -> list[AltCropRule]:
		await self._enter("alt_crop_rules")
		return list(self.alt_rules)

	async def fetch_latest_reading(self, crop: str) -> Reading | None:
		await self._enter("latest_reading", crop)
		return self.latest.get(crop)

	async def fetch_buckets(self, crop: str, since: datetime) -> list[HistoricalBucket]:
		await self._enter("history", crop)
		return [bucket for bucket in self.buckets.get(crop, []) if bucket.bucket_start >= since]

	async def fetch_history_log(
		self,
		since: datetime,
		search: str | None,
		sort: str,
		ascending: bool,
		limit: int | None,
	) -> tuple[list[HistoryLogRow], int]:
		await self._enter("history_log")
		self.history_log_queries.append((since, search, sort, ascending, limit))
		matched = [
			row
			for row in self.history_log
			if row.bucket_start >= since and (not search or search.lower() in (row.crop_text or "").lower())
		]
		attribute = "bucket_start" if sort == "bkt_30m" else sort
		matched.sort(key=lambda row: getattr(row, attribute), reverse=not ascending)
		return matched[:limit] if limit is not None else matched, len(matched)

	async def update_crop_preference(self, device_id: str, crop: str) -> None:
		self.calls.append(("crop_preference", crop))
		gate = self.gates.get(("crop_preference", crop))
		if gate is not None:
			await gate.wait()
		if "crop_preference" in self.failing:
			raise StalePreferenceWriteFailure("crop_preference", "store unreachable")
		self.preference_writes.append((device_id, crop))


class FakeSubscription:
	def __init__(
		self,
		crop: str,
		on_event: Callable[[ReadingEvent], None],
		fail: bool | BaseException = False,
	) -> None:
		self.crop = crop
		self.on_event = on_event
		self.fail = fail
		self.opened = False
		self.closed = False
		self.close_calls = 0

	@property
	def active(self) -> bool:
		return self.opened and not self.closed

	async def open(self) -> None:
		if isinstance(self.fail, BaseException):
			raise self.fail
		if self.fail:
			raise SubscriptionFailure(self.crop, "channel refused")
		self.opened = True

	async def close(self) -> None:
		self.close_calls += 1
		self.closed = True

	def emit(self, event: ReadingEvent) -> None:
		"""Deliver an event through the handler, even after close (an in-flight message)."""
		self.on_event(event)


class FakeSubscriptionFactory:
	def __init__(self) -> None:
		self.created: list[FakeSubscription] = []
		self.fail_next: bool | BaseException = False

	def __call__(self, crop: str, on_event: Callable[[ReadingEvent], None]) -> FakeSubscription:
		subscription = FakeSubscription(crop, on_event, fail=self.fail_next)
		self.fail_next = False
		self.created.append(subscription)
		return subscription

	@property
	def active(self) -> list[FakeSubscription]:
		return [subscription for subscription in self.created if subscription.active]

	def latest(self, crop: str) -> FakeSubscription:
		return [subscription for subscription in self.created if subscription.crop == crop][-1]


class FakePubSub:
	def __init__(self, payloads: list[Any], fail_subscribe: Exception | None = None) -> None:
		self.payloads = payloads
		self.index = 0
		self.fail_subscribe = fail_subscribe
		self.subscribed_channel: str | None = None
		self.unsubscribed_channel: str | None = None
		self.closed = False

	async def subscribe(self, channel: str) -> None:
		if self.fail_subscribe is not None:
			raise self.fail_subscribe
		self.subscribed_channel = channel

	async def get_message(self, ignore_subscribe_messages: bool, timeout: float) -> dict[str, Any] | None:
		if self.index >= len(self.payloads):
			return None
		message = self.payloads[self.index]
		self.index += 1
		if isinstance(message, BaseException):
			raise message
		return message

	async def unsubscribe(self, channel: str) -> None:
		self.unsubscribed_channel = channel

	async def close(self) -> None:
		self.closed = True


class FakeRedis:
	def __init__(self, payloads: list[Any] | None = None) -> None:
		self.payloads = payloads or []
		self.publish = AsyncMock(return_value=1)
		self.ping = AsyncMock(return_value=True)
		self.fail_subscribe: Exception | None = None
		self.last_pubsub: FakePubSub | None = None

	def pubsub(self) -> FakePubSub:
		self.last_pubsub = FakePubSub(self.payloads, fail_subscribe=self.fail_subscribe)
		return self.last_pubsub


def make_reading(crop: str = "pechay", minutes: int = 0, device_id: str = "dev-1", **values: float | None) -> Reading:
	return Reading(device_id=device_id, crop=crop, updated_at=BASE_TIME + timedelta(minutes=minutes), **values)


def make_rule(
	param: str,
	val_min: float,
	val_max: float,
	crop: str = "pechay",
	unit: str = "",
	description: str | None = None,
) -> ThresholdRule:
	return ThresholdRule(crop=crop, param=param, val_min=val_min, val_max=val_max, unit=unit, description=description)


def make_bucket(minutes: int, crop: str = "pechay", **values: float | None) -> HistoricalBucket:
	return HistoricalBucket(bucket_start=datetime.now(UTC) - timedelta(minutes=minutes), crop=crop, **values)


def make_event(reading: Reading, event_type: ReadingEventTypeEnum = ReadingEventTypeEnum.update) -> ReadingEvent:
	return ReadingEvent(event_type=event_type, record=reading)


ALT_RULES = [
	AltCropRule(soil_param="Soil Moisture", reading_range="<40% (dry)", recommended_crop="Lemongrass"),
	AltCropRule(soil_param="EC", reading_range="High EC (>2.0 mS/cm)", recommended_crop="Okra"),
	AltCropRule(soil_param="Soil Temperature", reading_range=">30° C (hot soil)", recommended_crop="Lemongrass"),
]


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides in API tests."""
	return FakeAsyncSession()


@pytest.fixture
def fake_redis() -> FakeRedis:
	"""Reusable fake Redis client with async publish and pubsub behavior."""
	return FakeRedis()


@pytest.fixture
def store() -> FakeStore:
	"""Store seeded with pechay/okra thresholds, alt-crop rules and one reading per crop."""
	fake = FakeStore()
	fake.device = DeviceInfo(id="dev-1", name="ESP32 field node", cur_crop="pechay")
	fake.thresholds = {
		"pechay": [
			make_rule("moist_pct", 40, 70, unit="%", description="Irrigate more frequently."),
			make_rule("temp_c", 18, 30, unit="°C"),
			make_rule("ec_ms", 0.5, 2.0, unit="mS/cm"),
		],
		"okra": [
			make_rule("moist_pct", 30, 60, crop="okra", unit="%"),
			make_rule("ph", 6.0, 6.8, crop="okra"),
		],
	}
	fake.alt_rules = list(ALT_RULES)
	fake.latest = {
		"pechay": make_reading("pechay", moist_pct=55.0, temp_c=24.0, ec_ms=1.2),
		"okra": make_reading("okra", minutes=1, moist_pct=45.0, ph=6.5),
	}
	fake.buckets = {
		"pechay": [
			make_bucket(90, moist_pct=10.0),
			make_bucket(60, moist_pct=None),
			make_bucket(30, moist_pct=30.0),
		],
	}
	return fake


@pytest.fixture
def subscriptions() -> FakeSubscriptionFactory:
	return FakeSubscriptionFactory()


@pytest.fixture
async def monitor(store: FakeStore, subscriptions: FakeSubscriptionFactory) -> AsyncGenerator[CropMonitor, None]:
	"""Started monitor over the fake store; stopped after the test."""
	crop_monitor = CropMonitor(store, subscriptions, default_crop="pechay")
	await crop_monitor.start()
	yield crop_monitor
	await crop_monitor.stop()


@pytest.fixture
async def client(fake_db_session: FakeAsyncSession, monitor: CropMonitor) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled, DB mocked and a fake-backed monitor."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	app.state.monitor = monitor
	app.state.redis = None
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
	app.state.monitor = None
