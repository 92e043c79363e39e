"""Bounded in-memory signal history per device, for graphing and diagnostics."""
from __future__ import annotations

from collections import deque
from threading import Lock

MAX_HISTORY_POINTS = 60  # roughly 3-5 minutes at typical scan rates


class SignalHistory:
	"""Per-key ring buffers of (timestamp, level) points.

	Owned by whoever starts monitoring and cleared when it stops; shared by
	the scan producers and any reader.
	"""

	def __init__(self, max_points: int = MAX_HISTORY_POINTS) -> None:
		if max_points < 1:
			raise ValueError(f"max_points ({max_points}) must be >= 1")
		self.max_points = max_points
		self._history: dict[str, deque[tuple[float, int]]] = {}
		self._lock = Lock()

	def add_point(self, key: str, level: int, now: float) -> None:
		with self._lock:
			points = self._history.get(key)
			if points is None:
				points = deque(maxlen=self.max_points)
				self._history[key] = points
			points.append((now, level))

	def get_history(self, key: str) -> list[tuple[float, int]]:
		"""Copy of the points for `key`, oldest first."""
		with self._lock:
			return list(self._history.get(key, ()))

	def keys(self) -> list[str]:
		with self._lock:
			return sorted(self._history)

	def clear(self) -> None:
		with self._lock:
			self._history.clear()

	def __len__(self) -> int:
		with self._lock:
			return len(self._history)
