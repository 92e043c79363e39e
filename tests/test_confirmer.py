"""Tests for the debounce confirmer state machine."""

from unittest.mock import MagicMock

import pytest

from conftest import feed, run
from vigil.detection.confirmer import (
	ConfirmedEvent,
	ConfirmerConfig,
	DebounceConfirmer,
	DetectionState,
)
from vigil.errors import ConfigurationError, OutOfOrderEvidenceError, TransientSourceError


class TestConfirmerConfig:
	def test_defaults(self):
		config = ConfirmerConfig()
		assert config.confirm_threshold_ms == 5000
		assert config.grace_period_ms == 1000
		assert config.cooldown_ms == 60000
		assert config.immediate is False

	@pytest.mark.parametrize("kwargs", [
		{"confirm_threshold_ms": 0},
		{"confirm_threshold_ms": -1},
		{"grace_period_ms": 0},
		{"cooldown_ms": -5},
	])
	def test_non_positive_durations_rejected(self, kwargs):
		with pytest.raises(ConfigurationError):
			ConfirmerConfig(**kwargs)

	def test_configuration_error_is_value_error(self):
		with pytest.raises(ValueError):
			ConfirmerConfig(cooldown_ms=0)

	def test_immediate_allows_zero_threshold(self):
		config = ConfirmerConfig.immediate_confirm(grace_period_ms=1000, cooldown_ms=30000)
		assert config.confirm_threshold_ms == 0
		assert config.immediate is True

	def test_immediate_requires_zero_threshold(self):
		with pytest.raises(ConfigurationError):
			ConfirmerConfig(confirm_threshold_ms=100, immediate=True)

	def test_frozen(self):
		config = ConfirmerConfig()
		with pytest.raises(AttributeError):
			config.cooldown_ms = 1


class TestSustainedEvidence:
	def test_initial_state(self, confirmer):
		assert confirmer.state is DetectionState.IDLE
		assert confirmer.elapsed_ms(0) == 0.0

	def test_false_evidence_stays_idle(self, confirmer):
		assert feed(confirmer, run(0, 10000, False)) == []
		assert confirmer.state is DetectionState.IDLE

	def test_confirms_once_at_threshold(self, confirmer):
		confirmed = feed(confirmer, run(0, 10000, True))
		assert confirmed == [5000]
		assert confirmer.state is DetectionState.COOLDOWN

	def test_below_threshold_does_not_confirm(self, confirmer):
		assert feed(confirmer, run(0, 4500, True)) == []
		assert confirmer.state is DetectionState.ACCUMULATING
		assert confirmer.elapsed_ms(4500) == 4500

	def test_irregular_ticks_confirm_on_first_crossing(self, confirmer):
		ticks = [(0, True), (1700, True), (4900, True), (5300, True), (5400, True)]
		assert feed(confirmer, ticks) == [5300]

	def test_event_contents(self, confirmer):
		events = [confirmer.observe(True, t) for t, _ in run(1000, 6000, True)]
		event = events[-1]
		assert isinstance(event, ConfirmedEvent)
		assert event.confirmer_id == "camera:test"
		assert event.started_at == 1000
		assert event.confirmed_at == 6000
		assert event.elapsed_ms == 5000
		assert event.to_dict()["has_payload"] is False


class TestCooldown:
	def test_no_second_event_during_cooldown(self, confirmer):
		confirmed = feed(confirmer, run(0, 64500, True))
		assert confirmed == [5000]
		assert confirmer.state is DetectionState.COOLDOWN

	def test_expiry_tick_ignores_evidence(self, confirmer):
		feed(confirmer, run(0, 5000, True))
		assert confirmer.observe(True, 65000) is None
		assert confirmer.state is DetectionState.IDLE

	def test_confirms_again_after_cooldown(self, confirmer):
		confirmed = feed(confirmer, run(0, 71000, True))
		# cooldown from 5000 ends at 65000, fresh run starts at 65500
		assert confirmed == [5000, 70500]
		assert confirmer.confirmations == 2


class TestGracePeriod:
	def test_short_gap_preserves_start(self, confirmer):
		ticks = run(0, 1000, True) + [(1500, False)] + run(2000, 6000, True)
		confirmed = feed(confirmer, ticks)
		assert confirmed == [5000]

	def test_absence_enters_grace(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.observe(False, 500)
		assert confirmer.state is DetectionState.GRACE
		assert confirmer.elapsed_ms(700) == 700

	def test_grace_holds_below_period(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.observe(False, 500)
		confirmer.observe(False, 1499)
		assert confirmer.state is DetectionState.GRACE

	def test_gap_at_grace_period_resets(self, confirmer):
		ticks = run(0, 2000, True) + [(2500, False), (3000, False), (3500, False)]
		feed(confirmer, ticks)
		assert confirmer.state is DetectionState.IDLE

		# fresh countdown from the next true sample
		confirmed = feed(confirmer, run(4000, 10000, True))
		assert confirmed == [9000]

	def test_return_after_threshold_confirms_immediately(self, confirmer):
		ticks = run(0, 4500, True) + [(4800, False), (5200, True)]
		assert feed(confirmer, ticks) == [5200]

	def test_glitch_then_long_absence_then_return(self, confirmer):
		ticks = [(0, True), (1000, True), (2000, False), (2500, True)]
		ticks += run(3000, 6500, True)
		ticks += run(7000, 60000, False, step=1000)
		ticks += run(61000, 71000, True)
		confirmed = feed(confirmer, ticks)
		# start is kept through the tolerated gap, so the first event lands at 5000
		assert confirmed == [5000, 70500]


class TestErrorTicks:
	def test_error_follows_grace_path(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.observe(True, 2000, error=True)
		assert confirmer.state is DetectionState.GRACE

	def test_error_does_not_reset_start(self, confirmer):
		ticks = run(0, 2000, True)
		feed(confirmer, ticks)
		confirmer.observe(False, 2500, error=True)
		assert feed(confirmer, run(3000, 5000, True)) == [5000]

	def test_error_in_idle_stays_idle(self, confirmer):
		confirmer.observe(True, 0, error=True)
		assert confirmer.state is DetectionState.IDLE

	def test_repeated_errors_expire_grace(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.observe(False, 500, error=True)
		confirmer.observe(False, 1500, error=True)
		assert confirmer.state is DetectionState.IDLE


class TestOrdering:
	def test_out_of_order_rejected(self, confirmer):
		confirmer.observe(True, 1000)
		with pytest.raises(OutOfOrderEvidenceError) as exc_info:
			confirmer.observe(True, 900)
		assert exc_info.value.now == 900
		assert exc_info.value.last == 1000
		assert confirmer.state is DetectionState.ACCUMULATING

	def test_equal_timestamps_accepted(self, confirmer):
		confirmer.observe(True, 1000)
		confirmer.observe(True, 1000)
		assert confirmer.state is DetectionState.ACCUMULATING

	def test_reset_clears_ordering(self, confirmer):
		confirmer.observe(True, 5000)
		confirmer.reset()
		confirmer.observe(True, 0)
		assert confirmer.state is DetectionState.ACCUMULATING


class TestTick:
	def test_tick_expires_grace(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.observe(False, 500)
		confirmer.tick(1500)
		assert confirmer.state is DetectionState.IDLE

	def test_tick_expires_cooldown(self, confirmer):
		feed(confirmer, run(0, 5000, True))
		confirmer.tick(64999)
		assert confirmer.state is DetectionState.COOLDOWN
		confirmer.tick(65000)
		assert confirmer.state is DetectionState.IDLE

	def test_tick_does_not_leave_accumulating(self, confirmer):
		confirmer.observe(True, 0)
		confirmer.tick(10000)
		assert confirmer.state is DetectionState.ACCUMULATING


class TestCallback:
	def test_callback_called_once_with_event(self, confirmer_config):
		callback = MagicMock()
		confirmer = DebounceConfirmer("camera:1", confirmer_config, on_confirmed=callback)
		feed(confirmer, run(0, 20000, True))
		callback.assert_called_once()
		event = callback.call_args[0][0]
		assert event.confirmed_at == 5000

	def test_register_later(self, confirmer):
		callback = MagicMock()
		confirmer.on_confirmed(callback)
		feed(confirmer, run(0, 5000, True))
		callback.assert_called_once()

	def test_register_twice_rejected(self, confirmer):
		confirmer.on_confirmed(MagicMock())
		with pytest.raises(RuntimeError):
			confirmer.on_confirmed(MagicMock())

	def test_callback_error_does_not_propagate(self, confirmer):
		confirmer.on_confirmed(MagicMock(side_effect=RuntimeError("boom")))
		assert feed(confirmer, run(0, 5000, True)) == [5000]
		assert confirmer.state is DetectionState.COOLDOWN

	def test_payload_snapshot_passed_to_event(self, confirmer):
		confirmer.observe(True, 0, payload="frame-0")
		confirmer.observe(True, 2500, payload="frame-2500")
		confirmer.observe(True, 4000)
		event = confirmer.observe(True, 5000)
		assert event.payload == "frame-2500"

	def test_payload_dropped_after_grace_expiry(self, confirmer):
		confirmer.observe(True, 0, payload="old")
		confirmer.observe(False, 500)
		confirmer.observe(False, 1500)
		confirmer.observe(True, 2000)
		event = confirmer.observe(True, 7000)
		assert event.payload is None


class TestLatestOnly:
	def test_overlapping_sample_dropped(self, confirmer):
		assert confirmer.try_begin() is True
		assert confirmer.try_begin() is False
		assert confirmer.dropped_samples == 1
		confirmer.complete(True, 0)
		assert confirmer.state is DetectionState.ACCUMULATING
		assert confirmer.try_begin() is True
		confirmer.complete(True, 500)

	def test_submit_while_busy_returns_none(self, confirmer):
		assert confirmer.try_begin()
		evaluate = MagicMock(return_value=True)
		assert confirmer.submit(evaluate, 0) is None
		evaluate.assert_not_called()
		assert confirmer.state is DetectionState.IDLE
		confirmer.complete(False, 0)

	def test_submit_evaluates(self, confirmer):
		for t, _ in run(0, 4500, True):
			assert confirmer.submit(lambda: True, t) is None
		event = confirmer.submit(lambda: True, 5000)
		assert event is not None

	def test_submit_transient_error_is_error_tick(self, confirmer):
		confirmer.submit(lambda: True, 0)

		def failing():
			raise TransientSourceError("camera:test", "decode failed")

		confirmer.submit(failing, 500)
		assert confirmer.state is DetectionState.GRACE
		# slot released after the failure
		assert confirmer.try_begin() is True
		confirmer.complete(True, 1000)

	def test_submit_releases_slot_on_unexpected_error(self, confirmer):
		def broken():
			raise KeyError("bad")

		with pytest.raises(KeyError):
			confirmer.submit(broken, 0)
		assert confirmer.try_begin() is True
		confirmer.complete(False, 0)


class TestImmediateConfirm:
	def test_first_true_sample_confirms(self):
		confirmer = DebounceConfirmer("motion", ConfirmerConfig.immediate_confirm(1000, 30000))
		assert confirmer.observe(False, 0) is None
		event = confirmer.observe(True, 100)
		assert event is not None
		assert event.elapsed_ms == 0
		assert confirmer.observe(True, 200) is None


class TestDiagnostics:
	def test_debug_info_accumulating(self, confirmer):
		confirmer.observe(True, 0)
		info = confirmer.debug_info(2000)
		assert "camera:test" in info
		assert "accumulating" in info
		assert "2000ms / 5000ms" in info

	def test_debug_info_cooldown(self, confirmer):
		feed(confirmer, run(0, 5000, True))
		assert "Cooldown remaining: 59000ms" in confirmer.debug_info(6000)

	def test_reset(self, confirmer):
		feed(confirmer, run(0, 5000, True))
		confirmer.reset()
		assert confirmer.state is DetectionState.IDLE
		assert confirmer.elapsed_ms(6000) == 0.0
