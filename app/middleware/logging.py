"""Structured logging setup and per-request context (request ID, active crop)."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import LogFormat, Settings, get_settings

REQUEST_ID_HEADER = "x-request-id"

# Logged at debug.
_QUIET_PATHS = frozenset({"/health", "/health/ready"})

_configured = False


def configure_structured_logging(settings: Settings | None = None) -> None:
	"""Route structlog and stdlib records through one renderer, once per process.

	Records from ``logging.getLogger(...)`` (uvicorn, SQLAlchemy, the lifespan
	messages in ``app.main``) pass through ``ProcessorFormatter`` so they come
	out in the same JSON/console shape as structlog events.
	"""
	global _configured
	if _configured:
		return

	settings = settings or get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	shared_processors: list[Any] = [
		structlog.contextvars.merge_contextvars,
		structlog.stdlib.add_logger_name,
		structlog.stdlib.add_log_level,
		structlog.processors.TimeStamper(fmt="iso", utc=True),
	]
	renderer: Any
	if settings.log_format == LogFormat.json:
		renderer = structlog.processors.JSONRenderer()
	else:
		renderer = structlog.dev.ConsoleRenderer()

	structlog.configure(
		processors=[
			*shared_processors,
			structlog.processors.format_exc_info,
			structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)

	handler = logging.StreamHandler()
	handler.setFormatter(
		structlog.stdlib.ProcessorFormatter(
			foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
			processors=[
				structlog.stdlib.ProcessorFormatter.remove_processors_meta,
				renderer,
			],
		)
	)
	root = logging.getLogger()
	root.handlers = [handler]
	root.setLevel(log_level)

	# RequestLoggingMiddleware already logs every request.
	logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
	_configured = True


def _active_crop(request: Request) -> str | None:
	monitor = getattr(request.app.state, "monitor", None)
	if monitor is None:
		return None
	return monitor.selection.active_crop


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Bind request ID and active crop to the log context; log per-request timing."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
		request.state.request_id = request_id

		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(request_id=request_id, crop=_active_crop(request))

		logger = structlog.get_logger("soilsense.request")
		path = request.url.path
		start = time.perf_counter()

		try:
			response = await call_next(request)
		except Exception as exc:
			logger.exception(
				"http_request_failed",
				method=request.method,
				path=path,
				duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
				error=str(exc),
			)
			raise

		response.headers[REQUEST_ID_HEADER] = request_id
		log = logger.debug if path in _QUIET_PATHS else logger.info
		log(
			"http_request",
			method=request.method,
			path=path,
			status_code=response.status_code,
			duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
		)
		return response
