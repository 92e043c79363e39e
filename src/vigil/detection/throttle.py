"""Minimum spacing between user-visible alerts, per alert key."""
from __future__ import annotations

from threading import Lock

import structlog

from vigil.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class NotificationThrottle:
	"""Rate limiter keyed by caller-defined alert classes.

	Keys such as ``"presence"``, ``"device:<address>"`` or ``"channel:<id>"``
	never throttle each other. Shared across producers, so every access to
	the map is guarded by a lock.
	"""

	def __init__(self, min_interval_ms: float) -> None:
		if min_interval_ms <= 0:
			raise ConfigurationError(f"min_interval_ms ({min_interval_ms}) must be positive")
		self.min_interval_ms = min_interval_ms
		self._last_fired: dict[str, float] = {}
		self._suppressed_until: dict[str, float] = {}
		self._lock = Lock()
		self._dropped = 0

	@property
	def dropped(self) -> int:
		"""Number of firings refused so far.

		Diagnostic only: it never affects whether a later firing is permitted.
		"""
		return self._dropped

	def try_fire(self, key: str, now: float) -> bool:
		"""Permit and record a firing for `key`.

		A refusal leaves the per-key state untouched; it only bumps the
		`dropped` diagnostic counter.
		"""
		with self._lock:
			if not self._allowed(key, now):
				self._dropped += 1
				logger.debug("alert_throttled", key=key, now=now, last_fired=self._last_fired.get(key))
				return False
			self._last_fired[key] = now
			return True

	def peek(self, key: str, now: float) -> bool:
		"""Whether `try_fire` would currently permit `key`."""
		with self._lock:
			return self._allowed(key, now)

	def suppress(self, key: str, until: float) -> None:
		"""Refuse `key` until the given time (snooze)."""
		with self._lock:
			self._suppressed_until[key] = max(until, self._suppressed_until.get(key, until))
		logger.debug("alert_suppressed", key=key, until=until)

	def last_fired(self, key: str) -> float | None:
		with self._lock:
			return self._last_fired.get(key)

	def forget(self, key: str) -> None:
		with self._lock:
			self._last_fired.pop(key, None)
			self._suppressed_until.pop(key, None)

	def reset(self) -> None:
		with self._lock:
			self._last_fired.clear()
			self._suppressed_until.clear()
			self._dropped = 0

	def _allowed(self, key: str, now: float) -> bool:
		until = self._suppressed_until.get(key)
		if until is not None and now < until:
			return False
		last = self._last_fired.get(key)
		return last is None or now - last >= self.min_interval_ms
