"""Tests for device arrival/departure tracking and signal history."""

import pytest

from vigil.detection.devices import DeviceEventType, DeviceTracker
from vigil.errors import ConfigurationError
from vigil.history import MAX_HISTORY_POINTS, SignalHistory
from vigil.sources.base import SeenDevice, SourceKind

MINUTE = 60 * 1000
PHONE = SeenDevice("aa:bb:cc:00:00:01", "Phone", -55, SourceKind.BLUETOOTH)
LAPTOP = SeenDevice("aa:bb:cc:00:00:02", "Laptop", -65, SourceKind.WIFI)


@pytest.fixture
def tracker():
	return DeviceTracker(absence_threshold_ms=30 * MINUTE, min_signal_dbm=-90)


class TestDeviceTracker:
	def test_invalid_threshold(self):
		with pytest.raises(ConfigurationError):
			DeviceTracker(absence_threshold_ms=0)

	def test_first_sighting_is_new_arrival(self, tracker):
		events = tracker.observe_scan([PHONE, LAPTOP], 0)
		assert [e.event_type for e in events] == [DeviceEventType.ARRIVED] * 2
		assert all(e.is_new for e in events)
		assert events[0].throttle_key == "device:aa:bb:cc:00:00:01"
		assert events[0].source is SourceKind.BLUETOOTH

	def test_repeat_sighting_silent(self, tracker):
		tracker.observe_scan([PHONE], 0)
		assert tracker.observe_scan([PHONE], MINUTE) == []
		assert tracker.last_seen(PHONE.address) == MINUTE

	def test_departure_reported_once(self, tracker):
		tracker.observe_scan([PHONE, LAPTOP], 0)
		tracker.observe_scan([LAPTOP], 10 * MINUTE)
		events = tracker.observe_scan([LAPTOP], 30 * MINUTE)
		assert len(events) == 1
		assert events[0].event_type is DeviceEventType.LEFT
		assert events[0].address == PHONE.address
		assert events[0].name == "Phone"
		assert tracker.observe_scan([LAPTOP], 31 * MINUTE) == []

	def test_return_after_absence(self, tracker):
		tracker.observe_scan([PHONE], 0)
		events = tracker.observe_scan([PHONE], 30 * MINUTE + 1)
		assert len(events) == 1
		assert events[0].event_type is DeviceEventType.ARRIVED
		assert events[0].is_new is False

	def test_return_at_threshold_is_not_arrival(self, tracker):
		tracker.observe_scan([PHONE], 0)
		assert tracker.observe_scan([PHONE], 30 * MINUTE) == []

	def test_weak_signal_ignored(self, tracker):
		weak = SeenDevice("aa:bb:cc:00:00:03", "Far", -95)
		assert tracker.observe_scan([weak], 0) == []
		assert tracker.known_devices() == []

	def test_weak_sighting_does_not_depart(self, tracker):
		tracker.observe_scan([PHONE], 0)
		faint = SeenDevice(PHONE.address, "Phone", -95, SourceKind.BLUETOOTH)
		assert tracker.observe_scan([faint], 30 * MINUTE) == []
		assert tracker.last_seen(PHONE.address) == 0

	def test_to_dict_and_reset(self, tracker):
		event = tracker.observe_scan([LAPTOP], 0)[0]
		data = event.to_dict()
		assert data["event_type"] == "arrived"
		assert data["source"] == "wifi"
		assert data["level_dbm"] == -65
		tracker.reset()
		assert tracker.known_devices() == []


class TestSignalHistory:
	def test_invalid_size(self):
		with pytest.raises(ValueError):
			SignalHistory(0)

	def test_points_in_order(self):
		history = SignalHistory()
		history.add_point("a", -50, 0)
		history.add_point("a", -55, 1000)
		assert history.get_history("a") == [(0, -50), (1000, -55)]
		assert history.get_history("missing") == []

	def test_bounded(self):
		history = SignalHistory()
		for i in range(MAX_HISTORY_POINTS + 10):
			history.add_point("a", -60, i)
		points = history.get_history("a")
		assert len(points) == MAX_HISTORY_POINTS
		assert points[0] == (10, -60)

	def test_returns_copy(self):
		history = SignalHistory(5)
		history.add_point("a", -60, 0)
		history.get_history("a").clear()
		assert len(history.get_history("a")) == 1

	def test_keys_and_clear(self):
		history = SignalHistory()
		history.add_point("b", -60, 0)
		history.add_point("a", -60, 0)
		assert history.keys() == ["a", "b"]
		assert len(history) == 2
		history.clear()
		assert len(history) == 0
