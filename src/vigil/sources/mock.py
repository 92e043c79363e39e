"""Scripted evidence sources for demos and tests.

Stand-ins for the real radio scanners, frame classifiers and sensors:
- ScriptedSource replays a timeline of presence judgments (and failures)
- MockAccelerometer produces a resting accelerometer signal with noise and
  optional shake windows

Enable in the CLI with `vigil simulate`.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import numpy as np

from vigil.errors import TransientSourceError

from .base import EvidenceSample, SignalSource

logger = logging.getLogger(__name__)

GRAVITY = 9.81


class ScriptedSource(SignalSource):
	"""Replays presence judgments at fixed timestamps.

	`script` maps a timestamp to True/False, or to None for a failed read.

	Usage:
		source = ScriptedSource("camera:front", {0: True, 500: True, 1000: None})
		for sample in source.replay():
			monitor.report_sample(sample)
	"""

	def __init__(self, source_id: str, script: dict[float, bool | None], metadata: str = "") -> None:
		super().__init__(source_id)
		self._script = dict(sorted(script.items()))
		self._metadata = metadata

	@classmethod
	def from_runs(
		cls,
		source_id: str,
		runs: Iterable[tuple[float, float, bool | None]],
		interval_ms: float,
		metadata: str = "",
	) -> ScriptedSource:
		"""Build from (start, end, value) runs sampled every `interval_ms` (end exclusive)."""
		script: dict[float, bool | None] = {}
		for start, end, value in runs:
			for t in np.arange(start, end, interval_ms):
				script[float(t)] = value
		return cls(source_id, script, metadata)

	@property
	def timestamps(self) -> list[float]:
		return list(self._script)

	def poll(self, now: float) -> EvidenceSample | None:
		if now not in self._script:
			return None
		value = self._script[now]
		if value is None:
			raise TransientSourceError(self.source_id, "scripted read failure")
		return EvidenceSample(self.source_id, value, now, self._metadata)

	def replay(self) -> Iterator[EvidenceSample]:
		"""Every scripted sample in order; failures come back as error samples."""
		for now, value in self._script.items():
			if value is None:
				yield EvidenceSample(self.source_id, False, now, self._metadata, error=True)
			else:
				yield EvidenceSample(self.source_id, value, now, self._metadata)

	def play(self) -> int:
		"""Push every scripted sample to subscribers. Returns the count."""
		count = 0
		for sample in self.replay():
			self.emit(sample)
			count += 1
		logger.debug("Replayed %d samples from %s", count, self.source_id)
		return count


@dataclass
class MockAccelerometerConfig:
	"""Configuration for synthetic accelerometer data."""
	noise_std: float = 0.05  # m/s^2 per axis
	shake_amplitude: float = 4.0  # m/s^2 per axis while shaking
	seed: int | None = None


class MockAccelerometer:
	"""Synthetic accelerometer resting flat, with scheduled shakes.

	Usage:
		sensor = MockAccelerometer(shakes=[(6000, 6500)])
		for x, y, z, now in sensor.samples(0, 10000, 100):
			guard.on_sensor_sample(x, y, z, now)
	"""

	def __init__(
		self,
		shakes: Iterable[tuple[float, float]] = (),
		config: MockAccelerometerConfig | None = None,
	) -> None:
		self._config = config or MockAccelerometerConfig()
		self._shakes = list(shakes)
		self._rng = np.random.default_rng(self._config.seed)

	def is_shaking(self, now: float) -> bool:
		return any(start <= now < end for start, end in self._shakes)

	def read(self, now: float) -> tuple[float, float, float]:
		"""One (x, y, z) reading at `now`."""
		base = np.array([0.0, 0.0, GRAVITY])
		noise = self._rng.normal(0.0, self._config.noise_std, size=3)
		if self.is_shaking(now):
			base = base + self._rng.uniform(-1.0, 1.0, size=3) * self._config.shake_amplitude
		x, y, z = (base + noise).tolist()
		return x, y, z

	def samples(self, start: float, end: float, interval_ms: float) -> Iterator[tuple[float, float, float, float]]:
		"""Readings from `start` to `end` (exclusive) as (x, y, z, now)."""
		for t in np.arange(start, end, interval_ms):
			now = float(t)
			x, y, z = self.read(now)
			yield x, y, z, now
