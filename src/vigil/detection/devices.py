"""Per-device arrival and departure tracking from radio scans."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from threading import Lock

import structlog

from vigil.errors import ConfigurationError
from vigil.sources.base import SeenDevice, SourceKind

logger = structlog.get_logger(__name__)


class DeviceEventType(str, Enum):
	ARRIVED = "arrived"
	LEFT = "left"


@dataclass
class DeviceEvent:
	"""A device arrived or left."""
	event_type: DeviceEventType
	address: str
	timestamp: float
	name: str = ""
	level_dbm: int | None = None
	source: SourceKind = SourceKind.WIFI
	is_new: bool = False  # never seen before this run

	@property
	def throttle_key(self) -> str:
		return f"device:{self.address}"

	def to_dict(self) -> dict:
		"""Convert to dictionary for serialization."""
		return {
			"event_type": self.event_type.value,
			"address": self.address,
			"timestamp": self.timestamp,
			"name": self.name,
			"level_dbm": self.level_dbm,
			"source": self.source.value,
			"is_new": self.is_new,
		}


@dataclass
class _DeviceRecord:
	last_seen: float
	name: str
	source: SourceKind
	departed: bool = False


class DeviceTracker:
	"""Turns repeated scan results into arrival/departure events.

	A device arrives when it is seen for the first time or after being
	unseen for longer than the absence threshold. It leaves once it has been
	missing for the absence threshold, reported once per absence.
	"""

	def __init__(self, absence_threshold_ms: float = 30 * 60 * 1000, min_signal_dbm: int = -90) -> None:
		if absence_threshold_ms <= 0:
			raise ConfigurationError(f"absence_threshold_ms ({absence_threshold_ms}) must be positive")
		self.absence_threshold_ms = absence_threshold_ms
		self.min_signal_dbm = min_signal_dbm
		self._devices: dict[str, _DeviceRecord] = {}
		self._lock = Lock()

	def observe_scan(self, devices: Iterable[SeenDevice], now: float) -> list[DeviceEvent]:
		"""Process one scan result and return the resulting events."""
		events: list[DeviceEvent] = []
		visible = list(devices)
		seen_addresses = {d.address for d in visible}

		with self._lock:
			for device in visible:
				# Weak signals are noise
				if device.level_dbm < self.min_signal_dbm:
					continue

				record = self._devices.get(device.address)
				if record is None or now - record.last_seen > self.absence_threshold_ms:
					events.append(DeviceEvent(
						event_type=DeviceEventType.ARRIVED,
						address=device.address,
						timestamp=now,
						name=device.name,
						level_dbm=device.level_dbm,
						source=device.source,
						is_new=record is None,
					))

				self._devices[device.address] = _DeviceRecord(
					last_seen=now,
					name=device.name or (record.name if record else ""),
					source=device.source,
				)

			for address, record in self._devices.items():
				if address in seen_addresses or record.departed:
					continue
				if now - record.last_seen >= self.absence_threshold_ms:
					record.departed = True
					events.append(DeviceEvent(
						event_type=DeviceEventType.LEFT,
						address=address,
						timestamp=now,
						name=record.name,
						source=record.source,
					))

		for event in events:
			logger.info("device_event", type=event.event_type.value, address=event.address, new=event.is_new)
		return events

	def last_seen(self, address: str) -> float | None:
		with self._lock:
			record = self._devices.get(address)
			return record.last_seen if record else None

	def known_devices(self) -> list[str]:
		with self._lock:
			return sorted(self._devices)

	def reset(self) -> None:
		with self._lock:
			self._devices.clear()
