"""Tests for multi-source presence fusion."""

import threading

import pytest

from vigil.detection.fusion import PresenceFusion
from vigil.errors import ConfigurationError


@pytest.fixture
def fusion():
	return PresenceFusion(decay_ms=60000)


class TestDecay:
	def test_nothing_reported(self, fusion):
		assert fusion.is_present(0) is False

	def test_present_within_window(self, fusion):
		fusion.report("wifi", True, 0)
		assert fusion.is_present(59999) is True

	def test_window_is_exclusive(self, fusion):
		fusion.report("wifi", True, 0)
		assert fusion.is_present(60000) is False

	def test_absent_report_does_not_extend(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("wifi", False, 30000)
		assert fusion.is_present(60000) is False

	def test_absent_report_does_not_cancel(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("wifi", False, 1000)
		assert fusion.is_present(1000) is True

	def test_sources_independent(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("bluetooth", True, 50000)
		assert fusion.is_present(100000) is True
		assert fusion.active_sources(100000) == ["bluetooth"]
		assert fusion.is_present(110000) is False

	def test_camera_override_by_kind(self):
		fusion = PresenceFusion(60000, decay_overrides={"camera": 30000})
		assert fusion.decay_for("camera:front") == 30000
		assert fusion.decay_for("wifi") == 60000
		fusion.report("camera:front", True, 0)
		assert fusion.is_present(29999) is True
		assert fusion.is_present(30000) is False

	def test_exact_id_override_wins(self):
		fusion = PresenceFusion(60000, decay_overrides={"camera": 30000, "camera:porch": 5000})
		assert fusion.decay_for("camera:porch") == 5000
		assert fusion.decay_for("camera:front") == 30000

	@pytest.mark.parametrize("kwargs", [
		{"decay_ms": 0},
		{"decay_ms": 1000, "hold_ms": -1},
		{"decay_ms": 1000, "decay_overrides": {"wifi": 0}},
	])
	def test_invalid_config(self, kwargs):
		with pytest.raises(ConfigurationError):
			PresenceFusion(**kwargs)


class TestOrdering:
	def test_out_of_order_dropped(self, fusion):
		assert fusion.report("wifi", True, 5000) is True
		assert fusion.report("wifi", True, 4000) is False
		assert fusion.is_present(64999) is True
		assert fusion.is_present(65000) is False

	def test_ordering_is_per_source(self, fusion):
		fusion.report("wifi", True, 5000)
		assert fusion.report("bluetooth", True, 4000) is True


class TestEvaluate:
	def test_change_reported_once(self, fusion):
		fusion.report("wifi", True, 0)
		change = fusion.evaluate(0, method="wifi")
		assert change is not None
		assert change.present is True
		assert change.method == "wifi"
		assert change.justification == "WiFi device"
		assert fusion.evaluate(1000) is None
		assert fusion.last_changed_at == 0

	def test_absence_after_decay(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.evaluate(0)
		change = fusion.evaluate(60000)
		assert change.present is False
		assert change.justification == "No source reported within its decay window"
		assert fusion.last_state is False

	def test_camera_justification_preferred(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("bluetooth", True, 100)
		fusion.report("camera:front", True, 200, details="Front door")
		change = fusion.evaluate(300)
		assert change.justification == "Camera: Front door"
		assert change.active_sources == ["camera:front", "bluetooth", "wifi"]

	def test_camera_justification_falls_back_to_id(self, fusion):
		fusion.report("camera:2", True, 0)
		fusion.evaluate(0)
		assert fusion.justification == "Camera: camera:2"

	def test_bluetooth_over_wifi(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("ble", True, 0)
		fusion.evaluate(0)
		assert fusion.justification == "Bluetooth device"

	def test_hold_delays_absence(self):
		fusion = PresenceFusion(1000, hold_ms=5000)
		fusion.report("wifi", True, 0)
		fusion.evaluate(500)
		assert fusion.evaluate(2000) is None
		assert fusion.justification == "Recently present (holding)"
		change = fusion.evaluate(5500)
		assert change is not None
		assert change.present is False

	def test_to_dict(self, fusion):
		fusion.report("wifi", True, 0)
		data = fusion.evaluate(0).to_dict()
		assert data["present"] is True
		assert data["active_sources"] == ["wifi"]


class TestDiagnostics:
	def test_describe(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.report("bluetooth", False, 0)
		text = fusion.describe(1000)
		assert "bluetooth: never" in text
		assert "wifi: active (1000ms ago)" in text
		assert text.endswith("Present: YES")

	def test_describe_expired(self, fusion):
		fusion.report("wifi", True, 0)
		assert "wifi: expired (70000ms ago) | Present: NO" in fusion.describe(70000)

	def test_remove_source(self, fusion):
		fusion.report("camera:1", True, 0)
		fusion.remove_source("camera:1")
		assert fusion.is_present(10) is False

	def test_reset(self, fusion):
		fusion.report("wifi", True, 0)
		fusion.evaluate(0)
		fusion.reset()
		assert fusion.is_present(1) is False
		assert fusion.last_state is False
		assert fusion.last_changed_at is None


class TestConcurrency:
	def test_concurrent_reports(self, fusion):
		def producer(source_id):
			for t in range(0, 10000, 10):
				fusion.report(source_id, True, t)

		threads = [threading.Thread(target=producer, args=(f"wifi:{i}",)) for i in range(4)]
		for t in threads:
			t.start()
		for t in threads:
			t.join()

		assert len(fusion.active_sources(9990)) == 4
		assert fusion.is_present(69989) is True
		assert fusion.is_present(69990) is False
