"""Centralized configuration for vigil.

All configuration can be set via environment variables or config file.
Environment variables take precedence over config file values.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import structlog

from vigil.detection.confirmer import ConfirmerConfig
from vigil.detection.motion import MotionConfig


@dataclass
class DetectionConfig:
	"""Person confirmation timing per camera channel (milliseconds)."""

	confirm_threshold_ms: float = 5000.0
	grace_period_ms: float = 1000.0
	cooldown_ms: float = 60000.0

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []
		if self.confirm_threshold_ms <= 0:
			errors.append(f"confirm_threshold_ms ({self.confirm_threshold_ms}) must be positive")
		if self.grace_period_ms <= 0:
			errors.append(f"grace_period_ms ({self.grace_period_ms}) must be positive")
		if self.cooldown_ms <= 0:
			errors.append(f"cooldown_ms ({self.cooldown_ms}) must be positive")
		return errors

	def to_confirmer_config(self) -> ConfirmerConfig:
		return ConfirmerConfig(
			confirm_threshold_ms=self.confirm_threshold_ms,
			grace_period_ms=self.grace_period_ms,
			cooldown_ms=self.cooldown_ms,
		)


@dataclass
class PresenceConfig:
	"""Presence fusion and device tracking configuration."""

	decay_ms: float = 60000.0  # Radio detections count this long
	camera_decay_ms: float = 30000.0  # Camera confirmations count this long
	hold_ms: float = 0.0  # Keep reporting presence this long after it lapses (0 = off)
	absence_threshold_ms: float = 30 * 60 * 1000.0  # Device gone this long = departed
	min_signal_dbm: int = -90  # Ignore weaker scan hits

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []
		if self.decay_ms <= 0:
			errors.append(f"decay_ms ({self.decay_ms}) must be positive")
		if self.camera_decay_ms <= 0:
			errors.append(f"camera_decay_ms ({self.camera_decay_ms}) must be positive")
		if self.hold_ms < 0:
			errors.append(f"hold_ms ({self.hold_ms}) must not be negative")
		if self.absence_threshold_ms <= 0:
			errors.append(f"absence_threshold_ms ({self.absence_threshold_ms}) must be positive")
		if self.min_signal_dbm > 0 or self.min_signal_dbm < -120:
			errors.append(f"min_signal_dbm ({self.min_signal_dbm}) must be between -120 and 0")
		return errors


@dataclass
class NotificationConfig:
	"""Alert rate limiting."""

	min_interval_ms: float = 5 * 60 * 1000.0  # Same alert key at most once per window
	snooze_ms: float = 15 * 60 * 1000.0  # Snoozed key stays quiet this long
	alert_on_new_devices: bool = True  # Security alert for never-seen devices
	new_device_min_dbm: int = -80  # Only alert for nearby unknown devices

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []
		if self.min_interval_ms <= 0:
			errors.append(f"min_interval_ms ({self.min_interval_ms}) must be positive")
		if self.snooze_ms <= 0:
			errors.append(f"snooze_ms ({self.snooze_ms}) must be positive")
		return errors


@dataclass
class LoggingConfig:
	"""Logging configuration."""

	level: str = "INFO"


@dataclass
class AppConfig:
	"""Complete application configuration."""

	detection: DetectionConfig = field(default_factory=DetectionConfig)
	presence: PresenceConfig = field(default_factory=PresenceConfig)
	motion: MotionConfig = field(default_factory=MotionConfig)
	notifications: NotificationConfig = field(default_factory=NotificationConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)

	@classmethod
	def from_env(cls) -> AppConfig:
		"""Load configuration from environment variables."""
		return cls().apply_env()

	def apply_env(self) -> AppConfig:
		"""Override values with any `VIGIL_*` environment variables. Returns self."""
		config = self

		# Detection config
		if threshold := os.environ.get("VIGIL_CONFIRM_THRESHOLD_MS"):
			config.detection.confirm_threshold_ms = float(threshold)
		if grace := os.environ.get("VIGIL_GRACE_PERIOD_MS"):
			config.detection.grace_period_ms = float(grace)
		if cooldown := os.environ.get("VIGIL_COOLDOWN_MS"):
			config.detection.cooldown_ms = float(cooldown)

		# Presence config
		if decay := os.environ.get("VIGIL_DECAY_MS"):
			config.presence.decay_ms = float(decay)
		if camera_decay := os.environ.get("VIGIL_CAMERA_DECAY_MS"):
			config.presence.camera_decay_ms = float(camera_decay)
		if hold := os.environ.get("VIGIL_HOLD_MS"):
			config.presence.hold_ms = float(hold)
		if absence := os.environ.get("VIGIL_ABSENCE_THRESHOLD_MS"):
			config.presence.absence_threshold_ms = float(absence)
		if min_signal := os.environ.get("VIGIL_MIN_SIGNAL_DBM"):
			config.presence.min_signal_dbm = int(min_signal)

		# Motion config
		if arming := os.environ.get("VIGIL_ARMING_GRACE_MS"):
			config.motion.arming_grace_ms = float(arming)
		if sensitivity := os.environ.get("VIGIL_MOTION_SENSITIVITY"):
			config.motion.sensitivity_threshold = float(sensitivity)
		if motion_cooldown := os.environ.get("VIGIL_MOTION_COOLDOWN_MS"):
			config.motion.cooldown_ms = float(motion_cooldown)

		# Notification config
		if interval := os.environ.get("VIGIL_NOTIFY_INTERVAL_MS"):
			config.notifications.min_interval_ms = float(interval)
		if snooze := os.environ.get("VIGIL_SNOOZE_MS"):
			config.notifications.snooze_ms = float(snooze)
		new_devices = os.environ.get("VIGIL_ALERT_NEW_DEVICES", "").lower()
		if new_devices:
			config.notifications.alert_on_new_devices = new_devices == "true"

		# Logging config
		config.logging.level = os.environ.get("VIGIL_LOG_LEVEL", config.logging.level)

		return config

	@classmethod
	def from_file(cls, path: str | Path) -> AppConfig:
		"""Load configuration from JSON file."""
		with open(path) as f:
			data = json.load(f)
		return cls._from_dict(data)

	@classmethod
	def load(cls, path: str | Path | None = None) -> AppConfig:
		"""Config file (if any) with environment variables applied on top."""
		config = cls.from_file(path) if path else cls()
		return config.apply_env()

	@classmethod
	def _from_dict(cls, data: dict[str, Any]) -> AppConfig:
		"""Create config from dictionary. Unknown keys are ignored."""
		config = cls()

		for section in fields(config):
			if section.name not in data:
				continue
			target = getattr(config, section.name)
			for key, value in data[section.name].items():
				if not hasattr(target, key):
					continue
				setattr(target, key, value)

		return config

	def to_dict(self) -> dict[str, Any]:
		"""Plain dictionary view, suitable for JSON output."""
		result: dict[str, Any] = {}
		for section in fields(self):
			target = getattr(self, section.name)
			result[section.name] = {f.name: getattr(target, f.name) for f in fields(target)}
		return result

	def validate(self) -> list[str]:
		"""Validate all configuration values. Returns list of error messages."""
		errors = []

		errors.extend(f"detection.{e}" for e in self.detection.validate())
		errors.extend(f"presence.{e}" for e in self.presence.validate())
		errors.extend(f"motion.{e}" for e in self.motion.validate())
		errors.extend(f"notifications.{e}" for e in self.notifications.validate())

		if self.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
			errors.append(f"logging.level ({self.logging.level}) is not a valid level")

		return errors


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
	"""Get the global configuration instance."""
	global _config
	if _config is None:
		_config = AppConfig.from_env()
	return _config


def configure_logging(level: str = "INFO") -> None:
	"""Configure structured logging for the application."""
	log_level = getattr(logging, level.upper(), logging.INFO)

	# Configure structlog
	structlog.configure(
		processors=[
			structlog.stdlib.filter_by_level,
			structlog.stdlib.add_logger_name,
			structlog.stdlib.add_log_level,
			structlog.stdlib.PositionalArgumentsFormatter(),
			structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
			structlog.processors.StackInfoRenderer(),
			structlog.processors.format_exc_info,
			structlog.processors.UnicodeDecoder(),
			structlog.dev.ConsoleRenderer(),
		],
		wrapper_class=structlog.stdlib.BoundLogger,
		context_class=dict,
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)

	# Configure standard logging
	logging.basicConfig(
		format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
		level=log_level,
	)
