"""Sustained-evidence confirmation state machine.

Turns a per-tick boolean evidence stream into at most one confirmed event
per cooldown window. Used for:
- Person-in-frame confirmation (one instance per camera channel)
- Motion intrusion confirmation (zero threshold, see motion.py)

Brief gaps in evidence are tolerated for a grace period without losing
accumulated time. Read failures from the evidence source are treated the
same way as a brief absence.
"""
from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from vigil.errors import ConfigurationError, OutOfOrderEvidenceError, TransientSourceError

logger = structlog.get_logger(__name__)


class DetectionState(str, Enum):
	"""Confirmer state machine states."""
	IDLE = "idle"                   # Nothing seen, timers cleared
	ACCUMULATING = "accumulating"   # Evidence present, counting toward threshold
	GRACE = "grace"                 # Evidence lost briefly, progress kept
	COOLDOWN = "cooldown"           # Confirmed, suppressing repeats


@dataclass(frozen=True)
class ConfirmerConfig:
	"""Timing configuration for a confirmer (milliseconds)."""
	confirm_threshold_ms: float = 5000.0   # Sustained evidence needed to confirm
	grace_period_ms: float = 1000.0        # Tolerated gap before progress resets
	cooldown_ms: float = 60000.0           # Quiet period after a confirmation
	immediate: bool = False                # Allows a zero threshold (first sample confirms)

	def __post_init__(self) -> None:
		errors = self.validate()
		if errors:
			raise ConfigurationError("; ".join(errors))

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []

		if self.immediate:
			if self.confirm_threshold_ms != 0:
				errors.append(
					f"confirm_threshold_ms ({self.confirm_threshold_ms}) must be 0 for immediate confirmation"
				)
		elif self.confirm_threshold_ms <= 0:
			errors.append(f"confirm_threshold_ms ({self.confirm_threshold_ms}) must be positive")
		if self.grace_period_ms <= 0:
			errors.append(f"grace_period_ms ({self.grace_period_ms}) must be positive")
		if self.cooldown_ms <= 0:
			errors.append(f"cooldown_ms ({self.cooldown_ms}) must be positive")

		return errors

	@classmethod
	def immediate_confirm(cls, grace_period_ms: float, cooldown_ms: float) -> ConfirmerConfig:
		"""Config whose first qualifying sample confirms."""
		return cls(
			confirm_threshold_ms=0,
			grace_period_ms=grace_period_ms,
			cooldown_ms=cooldown_ms,
			immediate=True,
		)


@dataclass
class ConfirmedEvent:
	"""Emitted once when evidence has been sustained past the threshold."""
	confirmer_id: str
	confirmed_at: float
	started_at: float
	payload: Any = None  # Snapshot taken while accumulating, owned by the receiver

	@property
	def elapsed_ms(self) -> float:
		return self.confirmed_at - self.started_at

	def to_dict(self) -> dict:
		"""Convert to dictionary for serialization (payload omitted)."""
		return {
			"confirmer_id": self.confirmer_id,
			"confirmed_at": self.confirmed_at,
			"started_at": self.started_at,
			"elapsed_ms": self.elapsed_ms,
			"has_payload": self.payload is not None,
		}


ConfirmedCallback = Callable[[ConfirmedEvent], None]


class DebounceConfirmer:
	"""Debounce state machine for a single monitored entity.

	IDLE -> ACCUMULATING on evidence; confirms once `now - start` reaches the
	threshold, then sits in COOLDOWN. A loss of evidence moves to GRACE
	without resetting `start`; only a gap of at least the grace period
	returns to IDLE.

	Each instance belongs to exactly one producer and must not be called
	concurrently with itself. Asynchronous producers should go through
	`submit()` (or `try_begin()`/`complete()`), which drops samples that
	arrive while a previous one is still being evaluated.

	Example:
		confirmer = DebounceConfirmer("channel:1", ConfirmerConfig())
		confirmer.on_confirmed(lambda event: notify(event))

		for person_in_frame, now in classifier_stream:
			confirmer.observe(person_in_frame, now)
	"""

	def __init__(
		self,
		confirmer_id: str,
		config: ConfirmerConfig | None = None,
		on_confirmed: ConfirmedCallback | None = None,
	) -> None:
		self.confirmer_id = confirmer_id
		self.config = config or ConfirmerConfig()
		self._callback: ConfirmedCallback | None = on_confirmed
		self._log = logger.bind(confirmer=confirmer_id)

		self._state = DetectionState.IDLE
		self._start: float | None = None
		self._last_seen: float | None = None
		self._cooldown_start: float | None = None
		self._last_now: float | None = None
		self._snapshot: Any = None

		self._in_flight = threading.Lock()
		self._dropped_samples = 0
		self._confirmations = 0

	@property
	def state(self) -> DetectionState:
		return self._state

	@property
	def dropped_samples(self) -> int:
		"""Samples discarded because an evaluation was already in flight."""
		return self._dropped_samples

	@property
	def confirmations(self) -> int:
		return self._confirmations

	def on_confirmed(self, callback: ConfirmedCallback) -> None:
		"""Register the confirmation callback (once per instance)."""
		if self._callback is not None:
			raise RuntimeError(f"{self.confirmer_id}: confirmation callback already registered")
		self._callback = callback

	def elapsed_ms(self, now: float) -> float:
		"""Time accumulated toward the threshold, 0 when not accumulating."""
		if self._start is None or self._state not in (DetectionState.ACCUMULATING, DetectionState.GRACE):
			return 0.0
		return max(0.0, now - self._start)

	def observe(
		self,
		evidence: bool,
		now: float,
		*,
		error: bool = False,
		payload: Any = None,
	) -> ConfirmedEvent | None:
		"""Advance the state machine by one sampling tick.

		Args:
			evidence: Whether the monitored condition holds this tick
			now: Tick timestamp in milliseconds (non-decreasing)
			error: The source failed this tick; evidence is forced to False
			payload: Optional snapshot kept while accumulating

		Returns:
			ConfirmedEvent if this tick confirmed, None otherwise

		Raises:
			OutOfOrderEvidenceError: if `now` precedes the previous tick
		"""
		self._check_order(now)
		if error:
			evidence = False

		state = self._state

		if state is DetectionState.IDLE:
			if not evidence:
				return None
			self._start = now
			self._last_seen = now
			self._keep_snapshot(payload)
			self._transition(DetectionState.ACCUMULATING, now)
			return self._check_threshold(now)

		if state is DetectionState.ACCUMULATING:
			if evidence:
				self._last_seen = now
				self._keep_snapshot(payload)
				return self._check_threshold(now)
			self._last_seen = now
			self._transition(DetectionState.GRACE, now, reason="error" if error else "absent")
			return None

		if state is DetectionState.GRACE:
			if evidence:
				self._last_seen = now
				self._keep_snapshot(payload)
				self._transition(DetectionState.ACCUMULATING, now)
				return self._check_threshold(now)
			self._expire_grace(now)
			return None

		# COOLDOWN ignores evidence
		self._expire_cooldown(now)
		return None

	def tick(self, now: float) -> None:
		"""Advance timers without a sample (grace and cooldown expiry only)."""
		self._check_order(now)
		if self._state is DetectionState.GRACE:
			self._expire_grace(now)
		elif self._state is DetectionState.COOLDOWN:
			self._expire_cooldown(now)

	def try_begin(self) -> bool:
		"""Claim the evaluation slot. False means the sample must be dropped."""
		if not self._in_flight.acquire(blocking=False):
			self._dropped_samples += 1
			self._log.debug("sample_dropped", dropped=self._dropped_samples)
			return False
		return True

	def complete(
		self,
		evidence: bool,
		now: float,
		*,
		error: bool = False,
		payload: Any = None,
	) -> ConfirmedEvent | None:
		"""Finish an evaluation started with `try_begin()`."""
		try:
			return self.observe(evidence, now, error=error, payload=payload)
		finally:
			self._in_flight.release()

	def submit(
		self,
		evaluate: Callable[[], bool],
		now: float,
		payload: Any = None,
	) -> ConfirmedEvent | None:
		"""Evaluate evidence with latest-only semantics.

		A TransientSourceError from `evaluate` becomes an error tick.
		"""
		if not self.try_begin():
			return None
		try:
			try:
				evidence = bool(evaluate())
				error = False
			except TransientSourceError as e:
				self._log.warning("evidence_source_failed", reason=str(e))
				evidence = False
				error = True
			return self.observe(evidence, now, error=error, payload=payload)
		finally:
			self._in_flight.release()

	def reset(self) -> None:
		"""Return to IDLE and forget all timers."""
		self._state = DetectionState.IDLE
		self._start = None
		self._last_seen = None
		self._cooldown_start = None
		self._last_now = None
		self._snapshot = None
		self._log.debug("confirmer_reset")

	def debug_info(self, now: float) -> str:
		"""Multi-line diagnostic summary of the current state."""
		lines = [
			f"Confirmer: {self.confirmer_id}",
			f"State: {self._state.value}",
		]
		if self._state in (DetectionState.ACCUMULATING, DetectionState.GRACE):
			lines.append(
				f"Accumulated: {self.elapsed_ms(now):.0f}ms / {self.config.confirm_threshold_ms:.0f}ms"
			)
		if self._state is DetectionState.COOLDOWN and self._cooldown_start is not None:
			remaining = max(0.0, self.config.cooldown_ms - (now - self._cooldown_start))
			lines.append(f"Cooldown remaining: {remaining:.0f}ms")
		if self._dropped_samples:
			lines.append(f"Dropped samples: {self._dropped_samples}")
		return "\n".join(lines)

	def _check_order(self, now: float) -> None:
		if self._last_now is not None and now < self._last_now:
			raise OutOfOrderEvidenceError(self.confirmer_id, now, self._last_now)
		self._last_now = now

	def _keep_snapshot(self, payload: Any) -> None:
		if payload is not None:
			self._snapshot = payload

	def _check_threshold(self, now: float) -> ConfirmedEvent | None:
		start = self._start
		if start is None or now - start < self.config.confirm_threshold_ms:
			return None

		event = ConfirmedEvent(
			confirmer_id=self.confirmer_id,
			confirmed_at=now,
			started_at=start,
			payload=self._snapshot,
		)
		self._snapshot = None
		self._start = None
		self._cooldown_start = now
		self._confirmations += 1
		self._transition(DetectionState.COOLDOWN, now)
		self._log.info("confirmed", elapsed_ms=event.elapsed_ms)

		if self._callback is not None:
			try:
				self._callback(event)
			except Exception:
				self._log.exception("confirmed_callback_failed")
		return event

	def _expire_grace(self, now: float) -> None:
		last_seen = self._last_seen
		if last_seen is None or now - last_seen >= self.config.grace_period_ms:
			self._start = None
			self._snapshot = None
			self._transition(DetectionState.IDLE, now, reason="grace_expired")

	def _expire_cooldown(self, now: float) -> None:
		cooldown_start = self._cooldown_start
		if cooldown_start is None or now - cooldown_start >= self.config.cooldown_ms:
			self._cooldown_start = None
			self._transition(DetectionState.IDLE, now, reason="cooldown_expired")

	def _transition(self, state: DetectionState, now: float, reason: str = "") -> None:
		self._log.debug("state_change", old=self._state.value, new=state.value, now=now, reason=reason)
		self._state = state
