"""Non-fatal failure types raised by the store and the live channel.

The monitoring core catches all of these, logs them, and keeps serving the
last good in-memory state.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class PipelineError(Exception):
	"""Structured failure carrying the operation that failed."""

	source: str
	detail: str

	def __str__(self) -> str:
		return f"{self.source}: {self.detail}"


class FetchFailure(PipelineError):
	"""A load (device, thresholds, alt-crop rules, snapshot, history) did not reach the store."""


class SubscriptionFailure(PipelineError):
	"""The push channel failed to open or dropped while open."""


class StalePreferenceWriteFailure(PipelineError):
	"""The best-effort write of the device's crop preference failed."""
