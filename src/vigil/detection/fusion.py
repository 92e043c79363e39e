"""Multi-source presence fusion.

Each source (Wi-Fi scan, Bluetooth scan, camera confirmation) reports
detections at its own irregular cadence. A detection keeps counting as
presence for a decay window, so overall presence only lapses once the
window has closed for every source at the same time. A missing report is
never evidence of absence by itself.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

import structlog

from vigil.errors import ConfigurationError
from vigil.sources.base import SourceKind

logger = structlog.get_logger(__name__)

# Justification prefers the most specific evidence
_KIND_PRIORITY = {
	SourceKind.CAMERA: 0,
	SourceKind.BLUETOOTH: 1,
	SourceKind.WIFI: 2,
	SourceKind.MOTION: 3,
	SourceKind.OTHER: 4,
}


@dataclass
class SourceEntry:
	"""Fusion bookkeeping for one source."""
	source_id: str
	kind: SourceKind
	decay_ms: float
	last_detected_at: float | None = None
	last_reported_at: float | None = None
	details: str = ""

	def is_active(self, now: float) -> bool:
		return self.last_detected_at is not None and now - self.last_detected_at < self.decay_ms

	def age_ms(self, now: float) -> float | None:
		if self.last_detected_at is None:
			return None
		return now - self.last_detected_at


@dataclass
class PresenceChange:
	"""Overall presence flipped."""
	present: bool
	changed_at: float
	method: str = ""
	justification: str = ""
	active_sources: list[str] = field(default_factory=list)

	def to_dict(self) -> dict:
		"""Convert to dictionary for serialization."""
		return {
			"present": self.present,
			"changed_at": self.changed_at,
			"method": self.method,
			"justification": self.justification,
			"active_sources": list(self.active_sources),
		}


class PresenceFusion:
	"""Aggregates independent detectors into one "anyone present" decision.

	Safe to call from several producer threads; reads never mutate.

	Example:
		fusion = PresenceFusion(decay_ms=60_000, decay_overrides={"camera": 30_000})
		fusion.report("wifi", True, now)
		if fusion.is_present(now):
			...
	"""

	def __init__(
		self,
		decay_ms: float,
		decay_overrides: dict[str, float] | None = None,
		hold_ms: float = 0.0,
	) -> None:
		if decay_ms <= 0:
			raise ConfigurationError(f"decay_ms ({decay_ms}) must be positive")
		if hold_ms < 0:
			raise ConfigurationError(f"hold_ms ({hold_ms}) must not be negative")
		overrides = dict(decay_overrides or {})
		for key, value in overrides.items():
			if value <= 0:
				raise ConfigurationError(f"decay override for {key!r} ({value}) must be positive")

		self.decay_ms = decay_ms
		self.hold_ms = hold_ms
		self._overrides = overrides
		self._sources: dict[str, SourceEntry] = {}
		self._lock = Lock()

		self._present = False
		self._last_changed_at: float | None = None
		self._last_present_at: float | None = None
		self._justification = "No detections yet"

	@property
	def last_changed_at(self) -> float | None:
		with self._lock:
			return self._last_changed_at

	@property
	def last_state(self) -> bool:
		"""Presence as of the last `evaluate()` call."""
		with self._lock:
			return self._present

	@property
	def justification(self) -> str:
		with self._lock:
			return self._justification

	def decay_for(self, source_id: str) -> float:
		"""Decay window for a source: exact id override, then kind override, then shared."""
		if source_id in self._overrides:
			return self._overrides[source_id]
		kind = SourceKind.from_source_id(source_id)
		return self._overrides.get(kind.value, self.decay_ms)

	def report(self, source_id: str, present: bool, now: float, details: str = "") -> bool:
		"""Record a detection. Returns False if the sample was dropped.

		Only ``present=True`` refreshes the source's timestamp. A report older
		than the previous one for the same source is logged and dropped.
		"""
		with self._lock:
			entry = self._sources.get(source_id)
			if entry is None:
				entry = SourceEntry(
					source_id=source_id,
					kind=SourceKind.from_source_id(source_id),
					decay_ms=self.decay_for(source_id),
				)
				self._sources[source_id] = entry
				logger.debug("source_registered", source=source_id, kind=entry.kind.value)

			if entry.last_reported_at is not None and now < entry.last_reported_at:
				logger.warning(
					"out_of_order_report",
					source=source_id,
					now=now,
					last=entry.last_reported_at,
				)
				return False

			entry.last_reported_at = now
			if present:
				entry.last_detected_at = now
				if details:
					entry.details = details
			return True

	def is_present(self, now: float) -> bool:
		"""True iff some source detected within its decay window."""
		with self._lock:
			return any(entry.is_active(now) for entry in self._sources.values())

	def active_sources(self, now: float) -> list[str]:
		"""Ids of sources inside their window, best evidence first."""
		with self._lock:
			return [entry.source_id for entry in self._ranked_active(now)]

	def evaluate(self, now: float, method: str = "") -> PresenceChange | None:
		"""Recompute overall presence and return a change if it flipped.

		With `hold_ms` set, presence is held for that long after the last
		detection lapses before reporting absence.
		"""
		with self._lock:
			active = self._ranked_active(now)
			detected = bool(active)
			if detected:
				self._last_present_at = now if self._last_present_at is None else max(self._last_present_at, now)
				held = True
			else:
				held = (
					self.hold_ms > 0
					and self._last_present_at is not None
					and now - self._last_present_at < self.hold_ms
				)

			justification = self._justify(active, held)
			self._justification = justification

			if held == self._present:
				return None

			self._present = held
			self._last_changed_at = now
			change = PresenceChange(
				present=held,
				changed_at=now,
				method=method,
				justification=justification,
				active_sources=[entry.source_id for entry in active],
			)

		logger.info("presence_changed", present=change.present, method=method, why=justification)
		return change

	def describe(self, now: float) -> str:
		"""One-line diagnostic of every source and the overall decision."""
		with self._lock:
			parts = []
			for entry in sorted(self._sources.values(), key=lambda e: e.source_id):
				age = entry.age_ms(now)
				if age is None:
					status = "never"
				elif entry.is_active(now):
					status = f"active ({age:.0f}ms ago)"
				else:
					status = f"expired ({age:.0f}ms ago)"
				parts.append(f"{entry.source_id}: {status}")
			present = any(entry.is_active(now) for entry in self._sources.values())
			parts.append(f"Present: {'YES' if present else 'NO'}")
			return " | ".join(parts)

	def remove_source(self, source_id: str) -> None:
		"""Forget a source entirely (its detection stops counting immediately)."""
		with self._lock:
			if self._sources.pop(source_id, None) is not None:
				logger.debug("source_removed", source=source_id)

	def reset(self) -> None:
		with self._lock:
			self._sources.clear()
			self._present = False
			self._last_changed_at = None
			self._last_present_at = None
			self._justification = "No detections yet"

	def _ranked_active(self, now: float) -> list[SourceEntry]:
		active = [entry for entry in self._sources.values() if entry.is_active(now)]
		active.sort(key=lambda e: (_KIND_PRIORITY[e.kind], -(e.last_detected_at or 0.0)))
		return active

	def _justify(self, active: list[SourceEntry], held: bool) -> str:
		if active:
			best = active[0]
			if best.kind is SourceKind.CAMERA:
				return f"Camera: {best.details or best.source_id}"
			if best.kind in (SourceKind.WIFI, SourceKind.BLUETOOTH):
				return f"{best.kind.label} device"
			return best.details or best.source_id
		if held:
			return "Recently present (holding)"
		return "No source reported within its decay window"
