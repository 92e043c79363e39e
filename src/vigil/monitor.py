"""Presence monitoring: wires evidence sources to the detection engines.

SignalSource -> DebounceConfirmer / PresenceFusion -> NotificationThrottle
-> AlertDispatcher. All stores are created by `start()` and discarded by
`stop()`; nothing survives a restart.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from threading import Lock
from typing import Any, NamedTuple

import structlog

from vigil.config import AppConfig
from vigil.detection.confirmer import ConfirmedEvent, DebounceConfirmer
from vigil.detection.devices import DeviceEvent, DeviceEventType, DeviceTracker
from vigil.detection.fusion import PresenceChange, PresenceFusion
from vigil.detection.throttle import NotificationThrottle
from vigil.dispatch import Acknowledgement, Alert, AlertDispatcher, AlertKind
from vigil.errors import OutOfOrderEvidenceError
from vigil.history import SignalHistory
from vigil.sources.base import EvidenceSample, SeenDevice, SourceKind

logger = structlog.get_logger(__name__)

PRESENCE_KEY = "presence"


def camera_source_id(channel_id: str) -> str:
	return f"camera:{channel_id}"


class _Stores(NamedTuple):
	"""Per-run stores, swapped in and out as one unit."""
	fusion: PresenceFusion
	throttle: NotificationThrottle
	tracker: DeviceTracker
	history: SignalHistory


class PresenceMonitor:
	"""Owns the shared presence stores and one confirmer per camera channel.

	Producers may keep calling in from their own threads while `stop()`
	runs; anything that arrives after it is logged and ignored.

	Example:
		monitor = PresenceMonitor(dispatcher, get_config())
		monitor.start(now)
		monitor.add_channel("front", name="Front door")

		monitor.report_frame("front", person_in_frame, now)
		monitor.report_scan("wifi", devices, now)
		...
		monitor.stop()
	"""

	def __init__(self, dispatcher: AlertDispatcher, config: AppConfig | None = None) -> None:
		self.config = config or AppConfig()
		self._dispatcher = dispatcher
		self._lock = Lock()

		self._stores: _Stores | None = None
		self._confirmers: dict[str, DebounceConfirmer] = {}
		self._channel_names: dict[str, str] = {}

	@property
	def is_running(self) -> bool:
		return self._snapshot() is not None

	@property
	def fusion(self) -> PresenceFusion:
		return self._require_stores().fusion

	@property
	def throttle(self) -> NotificationThrottle:
		return self._require_stores().throttle

	@property
	def tracker(self) -> DeviceTracker:
		return self._require_stores().tracker

	@property
	def history(self) -> SignalHistory:
		return self._require_stores().history

	@property
	def channels(self) -> list[str]:
		with self._lock:
			return sorted(self._confirmers)

	def start(self, now: float) -> None:
		"""Create fresh stores and begin accepting evidence."""
		presence = self.config.presence
		stores = _Stores(
			fusion=PresenceFusion(
				decay_ms=presence.decay_ms,
				decay_overrides={SourceKind.CAMERA.value: presence.camera_decay_ms},
				hold_ms=presence.hold_ms,
			),
			throttle=NotificationThrottle(self.config.notifications.min_interval_ms),
			tracker=DeviceTracker(
				absence_threshold_ms=presence.absence_threshold_ms,
				min_signal_dbm=presence.min_signal_dbm,
			),
			history=SignalHistory(),
		)
		with self._lock:
			if self._stores is not None:
				return
			self._stores = stores
		logger.info("monitoring_started", now=now)

	def stop(self) -> None:
		"""Reset every confirmer and discard all shared state."""
		with self._lock:
			stores = self._stores
			if stores is None:
				return
			self._stores = None
			confirmers = list(self._confirmers.values())
			self._confirmers.clear()
			self._channel_names.clear()

		for confirmer in confirmers:
			confirmer.reset()
		stores.history.clear()
		logger.info("monitoring_stopped")

	def add_channel(self, channel_id: str, name: str = "") -> DebounceConfirmer:
		"""Start person confirmation for a camera channel."""
		with self._lock:
			if self._stores is None:
				raise RuntimeError("Monitoring not started")
			if channel_id in self._confirmers:
				return self._confirmers[channel_id]
			confirmer = DebounceConfirmer(
				camera_source_id(channel_id),
				self.config.detection.to_confirmer_config(),
				on_confirmed=self._on_person_confirmed,
			)
			self._confirmers[channel_id] = confirmer
			self._channel_names[channel_id] = name or channel_id
		logger.info("channel_added", channel=channel_id, name=name)
		return confirmer

	def remove_channel(self, channel_id: str) -> None:
		"""Stop a channel: its confirmer resets and its fusion entry is dropped."""
		with self._lock:
			confirmer = self._confirmers.pop(channel_id, None)
			self._channel_names.pop(channel_id, None)
			stores = self._stores
		if confirmer is None:
			return
		confirmer.reset()
		if stores is not None:
			stores.fusion.remove_source(camera_source_id(channel_id))
		logger.info("channel_removed", channel=channel_id)

	def remove_source(self, source_id: str) -> None:
		"""Stop counting a radio (or other non-camera) source."""
		stores = self._snapshot()
		if stores is not None:
			stores.fusion.remove_source(source_id)

	def report(self, source_id: str, present: bool, now: float, details: str = "") -> PresenceChange | None:
		"""Feed a detection from any source straight into fusion."""
		stores = self._snapshot()
		if stores is None:
			logger.debug("report_ignored", source=source_id, reason="not running")
			return None
		return self._report(stores, source_id, present, now, details)

	def report_sample(self, sample: EvidenceSample) -> None:
		"""Route an EvidenceSample by its source kind."""
		if sample.kind is SourceKind.CAMERA:
			channel_id = sample.source_id.split(":", 1)[-1]
			self.report_frame(
				channel_id,
				sample.present,
				sample.observed_at,
				error=sample.error,
				payload=sample.payload,
			)
		elif sample.error:
			logger.debug("source_error_ignored", source=sample.source_id)
		else:
			self.report(sample.source_id, sample.present, sample.observed_at, sample.metadata)

	def report_frame(
		self,
		channel_id: str,
		person: bool,
		now: float,
		*,
		error: bool = False,
		payload: Any = None,
	) -> ConfirmedEvent | None:
		"""One classifier result for a camera channel."""
		confirmer = self._confirmer_for(channel_id)
		if confirmer is None:
			return None
		try:
			return confirmer.observe(person, now, error=error, payload=payload)
		except OutOfOrderEvidenceError as e:
			logger.warning("frame_dropped", channel=channel_id, reason=str(e))
			return None

	def submit_frame(
		self,
		channel_id: str,
		classify: Callable[[], bool],
		now: float,
		payload: Any = None,
	) -> ConfirmedEvent | None:
		"""Classify a frame with latest-only semantics (busy channel drops it)."""
		confirmer = self._confirmer_for(channel_id)
		if confirmer is None:
			return None
		try:
			return confirmer.submit(classify, now, payload=payload)
		except OutOfOrderEvidenceError as e:
			logger.warning("frame_dropped", channel=channel_id, reason=str(e))
			return None

	def report_scan(self, source_id: str, devices: Iterable[SeenDevice], now: float) -> list[DeviceEvent]:
		"""One radio scan result: device events, history and fusion."""
		stores = self._snapshot()
		if stores is None:
			logger.debug("scan_ignored", source=source_id, reason="not running")
			return []

		visible = list(devices)
		for device in visible:
			stores.history.add_point(device.address, device.level_dbm, now)

		events = stores.tracker.observe_scan(visible, now)
		for event in events:
			self._alert_device(stores.throttle, event, now)

		valid = [d for d in visible if d.level_dbm >= self.config.presence.min_signal_dbm]
		details = ", ".join(d.name or d.address for d in valid)
		self._report(stores, source_id, bool(valid), now, details)
		return events

	def tick(self, now: float) -> PresenceChange | None:
		"""Periodic housekeeping: expire confirmer timers, re-evaluate presence."""
		with self._lock:
			confirmers = list(self._confirmers.items())
			stores = self._stores
		for channel_id, confirmer in confirmers:
			try:
				confirmer.tick(now)
			except OutOfOrderEvidenceError as e:
				logger.warning("tick_dropped", channel=channel_id, reason=str(e))
		if stores is None:
			return None
		return self._evaluate(stores, now, "")

	def is_present(self, now: float) -> bool:
		stores = self._snapshot()
		return stores is not None and stores.fusion.is_present(now)

	def describe(self, now: float) -> str:
		stores = self._snapshot()
		if stores is None:
			return "Monitoring stopped"
		return stores.fusion.describe(now)

	def debug_info(self, now: float) -> str:
		"""Diagnostics for every channel plus fusion."""
		with self._lock:
			confirmers = list(self._confirmers.values())
		blocks = [c.debug_info(now) for c in confirmers]
		blocks.append(self.describe(now))
		return "\n\n".join(blocks)

	def acknowledge(self, ack: Acknowledgement, key: str, now: float) -> None:
		"""User reacted to an alert. Snooze also keeps `key` quiet for a while."""
		logger.info("alert_acknowledged", ack=ack.value, key=key)
		self._dispatcher.silence()
		stores = self._snapshot()
		if ack is Acknowledgement.SNOOZE and stores is not None:
			stores.throttle.suppress(key, now + self.config.notifications.snooze_ms)

	def _snapshot(self) -> _Stores | None:
		with self._lock:
			return self._stores

	def _require_stores(self) -> _Stores:
		stores = self._snapshot()
		if stores is None:
			raise RuntimeError("Monitoring not started")
		return stores

	def _confirmer_for(self, channel_id: str) -> DebounceConfirmer | None:
		with self._lock:
			confirmer = self._confirmers.get(channel_id)
		if confirmer is None:
			logger.debug("unknown_channel", channel=channel_id)
		return confirmer

	def _report(
		self,
		stores: _Stores,
		source_id: str,
		present: bool,
		now: float,
		details: str,
	) -> PresenceChange | None:
		if not stores.fusion.report(source_id, present, now, details):
			return None
		return self._evaluate(stores, now, SourceKind.from_source_id(source_id).label)

	def _on_person_confirmed(self, event: ConfirmedEvent) -> None:
		channel_id = event.confirmer_id.split(":", 1)[-1]
		with self._lock:
			name = self._channel_names.get(channel_id, channel_id)
			stores = self._stores
		if stores is None:
			return

		now = event.confirmed_at
		stores.fusion.report(event.confirmer_id, True, now, details=name)
		if stores.throttle.try_fire(f"channel:{channel_id}", now):
			self._dispatcher.raise_confirmed_presence(event)
		self._evaluate(stores, now, SourceKind.CAMERA.label)

	def _alert_device(self, throttle: NotificationThrottle, event: DeviceEvent, now: float) -> None:
		notifications = self.config.notifications

		if (
			event.is_new
			and notifications.alert_on_new_devices
			and event.level_dbm is not None
			and event.level_dbm >= notifications.new_device_min_dbm
			and throttle.try_fire(f"security:{event.address}", now)
		):
			self._dispatcher.raise_alert(Alert(
				kind=AlertKind.SECURITY,
				key=f"security:{event.address}",
				title="Unknown device nearby",
				message=f"{event.name or event.address} ({event.level_dbm} dBm)",
				raised_at=now,
			))

		if not throttle.try_fire(event.throttle_key, now):
			return
		label = event.name or event.address
		if event.event_type is DeviceEventType.ARRIVED:
			title, message = f"{label} arrived", f"Signal: {event.level_dbm} dBm"
		else:
			title, message = f"{label} left", "No longer detected"
		self._dispatcher.raise_alert(Alert(
			kind=AlertKind.DEVICE,
			key=event.throttle_key,
			title=title,
			message=message,
			raised_at=now,
		))

	def _evaluate(self, stores: _Stores, now: float, method: str) -> PresenceChange | None:
		change = stores.fusion.evaluate(now, method)
		if change is None:
			return None

		if stores.throttle.try_fire(PRESENCE_KEY, now):
			title = "Presence Detected" if change.present else "Area Clear"
			self._dispatcher.raise_alert(Alert(
				kind=AlertKind.PRESENCE,
				key=PRESENCE_KEY,
				title=title,
				message=change.justification,
				raised_at=now,
			))
		return change
