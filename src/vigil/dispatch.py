"""Outbound alert boundary.

The engines never render notifications or talk to the network. They hand
alerts to an AlertDispatcher supplied by the host application and receive
acknowledgements (stop, snooze) back.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

import structlog

from vigil.detection.confirmer import ConfirmedEvent

logger = structlog.get_logger(__name__)


class AlertKind(str, Enum):
	PRESENCE = "presence"          # overall presence flipped
	DEVICE = "device"              # device arrived/left
	SECURITY = "security"          # unknown device nearby
	PERSON = "person"              # person confirmed on a camera channel
	INTRUSION = "intrusion"        # motion / power / pocket trigger


class Acknowledgement(str, Enum):
	STOP = "stop"
	SNOOZE = "snooze"


@dataclass
class Alert:
	"""A user-visible alert handed to the host."""
	kind: AlertKind
	key: str
	title: str
	message: str
	raised_at: float
	payload: Any = None

	def to_dict(self) -> dict:
		"""Convert to dictionary for serialization (payload omitted)."""
		return {
			"kind": self.kind.value,
			"key": self.key,
			"title": self.title,
			"message": self.message,
			"raised_at": self.raised_at,
		}


class AlertDispatcher(ABC):
	"""Capability the host implements to surface alerts."""

	@abstractmethod
	def raise_alert(self, alert: Alert) -> None:
		"""Surface a generic alert."""

	@abstractmethod
	def raise_confirmed_presence(self, event: ConfirmedEvent) -> None:
		"""A person was confirmed. Owns `event.payload` and must release it."""

	@abstractmethod
	def raise_intrusion(self, reason: str, now: float) -> None:
		"""Start the intrusion alarm."""

	@abstractmethod
	def silence(self) -> None:
		"""Stop any alarm currently sounding."""


class LogDispatcher(AlertDispatcher):
	"""Dispatcher that only writes structured log lines."""

	def raise_alert(self, alert: Alert) -> None:
		logger.info("alert", kind=alert.kind.value, key=alert.key, title=alert.title, message=alert.message)

	def raise_confirmed_presence(self, event: ConfirmedEvent) -> None:
		logger.warning("person_confirmed", confirmer=event.confirmer_id, elapsed_ms=event.elapsed_ms)

	def raise_intrusion(self, reason: str, now: float) -> None:
		logger.warning("intrusion", reason=reason, now=now)

	def silence(self) -> None:
		logger.info("alarm_silenced")


class RecordingDispatcher(LogDispatcher):
	"""Keeps everything it receives in memory, in arrival order."""

	def __init__(self) -> None:
		self._lock = Lock()
		self.alerts: list[Alert] = []
		self.confirmations: list[ConfirmedEvent] = []
		self.intrusions: list[tuple[str, float]] = []
		self.silenced = 0

	def raise_alert(self, alert: Alert) -> None:
		super().raise_alert(alert)
		with self._lock:
			self.alerts.append(alert)

	def raise_confirmed_presence(self, event: ConfirmedEvent) -> None:
		super().raise_confirmed_presence(event)
		with self._lock:
			self.confirmations.append(event)

	def raise_intrusion(self, reason: str, now: float) -> None:
		super().raise_intrusion(reason, now)
		with self._lock:
			self.intrusions.append((reason, now))

	def silence(self) -> None:
		super().silence()
		with self._lock:
			self.silenced += 1

	def clear(self) -> None:
		with self._lock:
			self.alerts.clear()
			self.confirmations.clear()
			self.intrusions.clear()
			self.silenced = 0
