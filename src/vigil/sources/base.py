"""Evidence source contract.

Radio scanners, frame classifiers and sensor readers live outside this
package. They either push samples into the engines as they arrive or are
polled by the caller's loop; both shapes are described here.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any


class SourceKind(str, Enum):
	"""Kind of evidence a source produces."""
	WIFI = "wifi"
	BLUETOOTH = "bluetooth"
	CAMERA = "camera"
	MOTION = "motion"
	OTHER = "other"

	@classmethod
	def from_source_id(cls, source_id: str) -> SourceKind:
		"""Infer the kind from an id such as ``"camera:front"`` or ``"wifi"``."""
		prefix = source_id.split(":", 1)[0].lower()
		aliases = {"bt": cls.BLUETOOTH, "ble": cls.BLUETOOTH, "channel": cls.CAMERA}
		if prefix in aliases:
			return aliases[prefix]
		try:
			return cls(prefix)
		except ValueError:
			return cls.OTHER

	@property
	def label(self) -> str:
		return {
			SourceKind.WIFI: "WiFi",
			SourceKind.BLUETOOTH: "Bluetooth",
			SourceKind.CAMERA: "Camera",
			SourceKind.MOTION: "Motion",
			SourceKind.OTHER: "Source",
		}[self]


@dataclass(frozen=True)
class EvidenceSample:
	"""One judgment from one source for one tick. Never mutated."""
	source_id: str
	present: bool
	observed_at: float  # milliseconds
	metadata: str = ""
	payload: Any = None  # optional snapshot (e.g. frame), ownership moves downstream
	error: bool = False  # source failed this tick

	@property
	def kind(self) -> SourceKind:
		return SourceKind.from_source_id(self.source_id)


@dataclass(frozen=True)
class SeenDevice:
	"""A device found by a radio scan."""
	address: str
	name: str = ""
	level_dbm: int = -60
	source: SourceKind = SourceKind.WIFI


def now_ms() -> float:
	"""Monotonic clock in milliseconds, for callers that drive the engines live."""
	return time.monotonic() * 1000.0


SampleCallback = Callable[[EvidenceSample], None]


class SignalSource(ABC):
	"""Capability implemented by evidence collaborators.

	Pull-style sources implement `poll()`; push-style sources call every
	registered callback from their own thread. A source may support both.
	"""

	def __init__(self, source_id: str) -> None:
		self.source_id = source_id
		self._callbacks: list[SampleCallback] = []

	@property
	def kind(self) -> SourceKind:
		return SourceKind.from_source_id(self.source_id)

	def subscribe(self, callback: SampleCallback) -> None:
		"""Register a push callback."""
		self._callbacks.append(callback)

	def unsubscribe(self, callback: SampleCallback) -> None:
		if callback in self._callbacks:
			self._callbacks.remove(callback)

	def emit(self, sample: EvidenceSample) -> None:
		"""Deliver a sample to every subscriber."""
		for cb in list(self._callbacks):
			cb(sample)

	@abstractmethod
	def poll(self, now: float) -> EvidenceSample | None:
		"""Current evidence, or None when the source has nothing new.

		May raise TransientSourceError for a failed read.
		"""

	def stream(self, timestamps: Iterator[float]) -> Iterator[EvidenceSample]:
		"""Poll once per supplied timestamp, skipping empty ticks."""
		for now in timestamps:
			sample = self.poll(now)
			if sample is not None:
				yield sample

	def start(self) -> None:
		"""Begin producing evidence."""

	def stop(self) -> None:
		"""Stop producing evidence."""
