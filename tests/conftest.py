"""Pytest fixtures."""

from unittest.mock import MagicMock

import pytest

from vigil.config import AppConfig
from vigil.detection.confirmer import ConfirmerConfig, DebounceConfirmer
from vigil.dispatch import AlertDispatcher, RecordingDispatcher


@pytest.fixture
def confirmer_config() -> ConfirmerConfig:
	"""5s threshold, 1s grace, 60s cooldown."""
	return ConfirmerConfig(confirm_threshold_ms=5000, grace_period_ms=1000, cooldown_ms=60000)


@pytest.fixture
def confirmer(confirmer_config) -> DebounceConfirmer:
	return DebounceConfirmer("camera:test", confirmer_config)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
	return RecordingDispatcher()


@pytest.fixture
def mock_dispatcher() -> MagicMock:
	return MagicMock(spec=AlertDispatcher)


@pytest.fixture
def app_config() -> AppConfig:
	"""Defaults with a short notification interval so tests can see repeats."""
	config = AppConfig()
	config.notifications.min_interval_ms = 1000
	return config


def feed(confirmer: DebounceConfirmer, ticks) -> list[float]:
	"""Observe (now, evidence) ticks in order; return confirmation times."""
	confirmed = []
	for now, evidence in ticks:
		event = confirmer.observe(evidence, now)
		if event is not None:
			confirmed.append(event.confirmed_at)
	return confirmed


def run(start: float, end: float, evidence: bool, step: float = 500) -> list[tuple[float, bool]]:
	"""Ticks from start to end (inclusive) every `step` ms."""
	ticks = []
	t = start
	while t <= end:
		ticks.append((t, evidence))
		t += step
	return ticks
