"""Anti-theft intrusion detection for an armed device.

Three independent triggers:
- Motion: accelerometer delta magnitude above a sensitivity threshold,
  debounced by a zero-threshold DebounceConfirmer so repeats are suppressed
  for the cooldown window
- Power: charger disconnected while armed, raised instantly
- Pocket: proximity sensor uncovered after having been covered, raised
  instantly

Samples taken during the arming grace window only move the baseline, so
setting the device down after arming does not trip the alarm.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
import structlog
from numpy.typing import NDArray

from vigil.detection.confirmer import ConfirmedEvent, ConfirmerConfig, DebounceConfirmer, DetectionState
from vigil.dispatch import Acknowledgement, AlertDispatcher
from vigil.errors import ConfigurationError, OutOfOrderEvidenceError

logger = structlog.get_logger(__name__)


class IntrusionTrigger(str, Enum):
	"""What raised the alarm. Values are the user-facing reasons."""
	MOTION = "Motion Detected!"
	POWER = "Charger Disconnected!"
	POCKET = "Removed from Pocket!"


@dataclass
class MotionConfig:
	"""Configuration for motion intrusion detection."""
	arming_grace_ms: float = 5000.0      # Time to set the device down after arming
	sensitivity_threshold: float = 1.5   # m/s^2 delta magnitude
	grace_period_ms: float = 1000.0      # Confirmer grace between qualifying deltas
	cooldown_ms: float = 60000.0         # No repeat motion alarm within this window

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []
		if self.arming_grace_ms < 0:
			errors.append(f"arming_grace_ms ({self.arming_grace_ms}) must not be negative")
		if self.sensitivity_threshold <= 0:
			errors.append(f"sensitivity_threshold ({self.sensitivity_threshold}) must be positive")
		if self.grace_period_ms <= 0:
			errors.append(f"grace_period_ms ({self.grace_period_ms}) must be positive")
		if self.cooldown_ms <= 0:
			errors.append(f"cooldown_ms ({self.cooldown_ms}) must be positive")
		return errors


class MotionIntrusionConfirmer:
	"""Arms/disarms the device and raises intrusion alarms.

	Example:
		guard = MotionIntrusionConfirmer(dispatcher)
		guard.arm(now)

		# from the sensor callback
		guard.on_sensor_sample(x, y, z, now)
	"""

	def __init__(self, dispatcher: AlertDispatcher, config: MotionConfig | None = None) -> None:
		self.config = config or MotionConfig()
		errors = self.config.validate()
		if errors:
			raise ConfigurationError("; ".join(errors))

		self._dispatcher = dispatcher
		self._confirmer = DebounceConfirmer(
			"motion",
			ConfirmerConfig.immediate_confirm(
				grace_period_ms=self.config.grace_period_ms,
				cooldown_ms=self.config.cooldown_ms,
			),
			on_confirmed=self._on_motion_confirmed,
		)

		self._motion_armed = False
		self._charger_armed = False
		self._pocket_armed = False
		self._pocket_secured = False
		self._armed_at: float | None = None
		self._baseline: NDArray[np.float64] | None = None
		self._last_delta = 0.0
		self._alarm_active = False
		self._last_trigger: IntrusionTrigger | None = None
		self._motion_raised = False

	@property
	def is_armed(self) -> bool:
		return self._motion_armed or self._charger_armed or self._pocket_armed

	@property
	def armed_modes(self) -> list[str]:
		modes = []
		if self._motion_armed:
			modes.append("motion")
		if self._charger_armed:
			modes.append("charger")
		if self._pocket_armed:
			modes.append("pocket")
		return modes

	@property
	def alarm_active(self) -> bool:
		return self._alarm_active

	@property
	def last_trigger(self) -> IntrusionTrigger | None:
		return self._last_trigger

	@property
	def last_delta(self) -> float:
		"""Magnitude of the most recent accelerometer delta."""
		return self._last_delta

	@property
	def state(self) -> DetectionState:
		return self._confirmer.state

	def in_arming_grace(self, now: float) -> bool:
		return (
			self._motion_armed
			and self._armed_at is not None
			and now - self._armed_at < self.config.arming_grace_ms
		)

	def arm(self, now: float, *, motion: bool = True, charger: bool = True, pocket: bool = False) -> None:
		"""Arm the requested modes. Already armed modes are left untouched."""
		if motion and not self._motion_armed:
			self._motion_armed = True
			self._armed_at = now
			self._baseline = None
			self._confirmer.reset()
		if charger:
			self._charger_armed = True
		if pocket and not self._pocket_armed:
			self._pocket_armed = True
			self._pocket_secured = False
		logger.info("armed", modes=self.armed_modes, now=now)

	def disarm(self, now: float, *, motion: bool = True, charger: bool = True, pocket: bool = True) -> None:
		"""Disarm the requested modes and silence any alarm in flight."""
		if not self.is_armed:
			return

		if motion:
			self._motion_armed = False
			self._armed_at = None
			self._baseline = None
			self._confirmer.reset()
		if charger:
			self._charger_armed = False
		if pocket:
			self._pocket_armed = False
			self._pocket_secured = False

		if self._alarm_active:
			self._silence()
		logger.info("disarmed", remaining=self.armed_modes, now=now)

	def acknowledge(self, ack: Acknowledgement, now: float) -> None:
		"""User stopped or snoozed the alarm. Stays armed."""
		if self._alarm_active:
			logger.info("alarm_acknowledged", ack=ack.value, now=now)
			self._silence()

	def on_sensor_sample(self, x: float, y: float, z: float, now: float) -> bool:
		"""Feed one accelerometer sample. Returns True if it raised the alarm."""
		if not self._motion_armed:
			return False

		current = np.array([x, y, z], dtype=np.float64)

		if self.in_arming_grace(now) or self._baseline is None:
			self._baseline = current
			return False

		previous_baseline, previous_delta = self._baseline, self._last_delta
		self._motion_raised = False
		self._last_delta = float(np.linalg.norm(current - self._baseline))
		self._baseline = current
		evidence = self._last_delta > self.config.sensitivity_threshold

		try:
			event = self._confirmer.observe(evidence, now)
		except OutOfOrderEvidenceError as e:
			# A stale sample must not become the baseline
			self._baseline, self._last_delta = previous_baseline, previous_delta
			logger.warning("sensor_sample_dropped", reason=str(e))
			return False

		return event is not None and self._motion_raised

	def on_power_disconnected(self, now: float) -> bool:
		"""Charger unplugged. Bypasses the confirmer entirely."""
		if not self._charger_armed:
			return False
		logger.warning("power_disconnected_while_armed", now=now)
		return self._trigger(IntrusionTrigger.POWER, now)

	def on_proximity(self, distance: float, max_range: float, now: float) -> bool:
		"""Proximity reading for pocket mode. Returns True if it raised the alarm."""
		if not self._pocket_armed:
			return False
		if distance < max_range:
			if not self._pocket_secured:
				self._pocket_secured = True
				logger.debug("pocket_secured", now=now)
			return False
		if self._pocket_secured:
			logger.warning("pocket_uncovered", now=now)
			return self._trigger(IntrusionTrigger.POCKET, now)
		return False

	def reset(self) -> None:
		"""Drop all state as if freshly constructed (does not notify)."""
		self._motion_armed = False
		self._charger_armed = False
		self._pocket_armed = False
		self._pocket_secured = False
		self._armed_at = None
		self._baseline = None
		self._last_delta = 0.0
		self._alarm_active = False
		self._last_trigger = None
		self._confirmer.reset()

	def _on_motion_confirmed(self, event: ConfirmedEvent) -> None:
		logger.warning("motion_detected", delta=round(self._last_delta, 3))
		self._motion_raised = self._trigger(IntrusionTrigger.MOTION, event.confirmed_at)

	def _trigger(self, trigger: IntrusionTrigger, now: float) -> bool:
		# One alarm at a time
		if self._alarm_active:
			return False
		self._alarm_active = True
		self._last_trigger = trigger
		logger.warning("intrusion_triggered", reason=trigger.value, now=now)
		self._dispatcher.raise_intrusion(trigger.value, now)
		return True

	def _silence(self) -> None:
		self._alarm_active = False
		self._dispatcher.silence()
