"""Redis pub/sub transport for live reading events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.schemas.telemetry import ReadingEvent
from app.services.errors import SubscriptionFailure

logger = structlog.get_logger("soilsense.live_channel")

EventHandler = Callable[[ReadingEvent], None]


class LiveSubscription(Protocol):
	@property
	def active(self) -> bool: ...

	async def open(self) -> None: ...

	async def close(self) -> None: ...


SubscriptionFactory = Callable[[str, EventHandler], LiveSubscription]


def reading_channel(prefix: str, crop: str) -> str:
	return f"{prefix}:{crop}:live"


async def publish_reading_event(redis_client: Redis, prefix: str, event: ReadingEvent) -> None:
	await redis_client.publish(reading_channel(prefix, event.crop), event.model_dump_json())


class ReadingSubscription:
	"""One pub/sub subscription to a single crop's channel.

	``open`` subscribes and starts a pump task that decodes each message and
	hands it to ``on_event``. ``close`` may be called any number of times,
	including before or after a failed ``open``.
	"""

	def __init__(
		self,
		redis_client: Redis,
		channel: str,
		on_event: EventHandler,
		poll_timeout: float = 1.0,
	):
		self.redis_client = redis_client
		self.channel = channel
		self.on_event = on_event
		self.poll_timeout = poll_timeout
		self._pubsub: Any | None = None
		self._task: asyncio.Task[None] | None = None
		self._closed = False

	@property
	def active(self) -> bool:
		return self._task is not None and not self._task.done() and not self._closed

	async def open(self) -> None:
		if self._closed:
			raise SubscriptionFailure(self.channel, "subscription already closed")
		pubsub = self.redis_client.pubsub()
		self._pubsub = pubsub
		try:
			await pubsub.subscribe(self.channel)
		except (RedisError, OSError) as exc:
			raise SubscriptionFailure(self.channel, str(exc)) from exc
		self._task = asyncio.create_task(self._pump(pubsub))
		logger.info("live_subscription_opened", channel=self.channel)

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True

		task, self._task = self._task, None
		if task is not None and not task.done():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass

		pubsub, self._pubsub = self._pubsub, None
		if pubsub is None:
			return
		try:
			await pubsub.unsubscribe(self.channel)
			await pubsub.close()
		except (RedisError, OSError) as exc:
			logger.warning("live_subscription_close_failed", channel=self.channel, error=str(exc))
		logger.info("live_subscription_closed", channel=self.channel)

	async def _pump(self, pubsub: Any) -> None:
		try:
			while not self._closed:
				try:
					message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_timeout)
				except UnicodeDecodeError as exc:
					# decode_responses clients fail inside get_message; the frame is already consumed.
					logger.warning("live_event_malformed", channel=self.channel, error=str(exc))
					continue
				if message is not None and message.get("type") == "message":
					self._dispatch(message.get("data"))
				await asyncio.sleep(0.05)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			failure = SubscriptionFailure(self.channel, str(exc))
			logger.error("live_subscription_dropped", channel=self.channel, error=str(failure), exc_info=exc)

	def _dispatch(self, payload: Any) -> None:
		try:
			if isinstance(payload, bytes):
				payload = payload.decode("utf-8")
			if not isinstance(payload, str):
				return
			event = ReadingEvent.model_validate_json(payload)
		except (UnicodeDecodeError, ValidationError) as exc:
			logger.warning("live_event_malformed", channel=self.channel, error=str(exc))
			return
		if self._closed:
			return
		self.on_event(event)


def make_subscription_factory(
	redis_client: Redis,
	prefix: str,
	poll_timeout: float = 1.0,
) -> SubscriptionFactory:
	def factory(crop: str, on_event: EventHandler) -> LiveSubscription:
		return ReadingSubscription(
			redis_client,
			reading_channel(prefix, crop),
			on_event,
			poll_timeout=poll_timeout,
		)

	return factory
