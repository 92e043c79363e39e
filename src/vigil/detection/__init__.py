"""Temporal detection engines."""

from vigil.detection.confirmer import (
	ConfirmedEvent,
	ConfirmerConfig,
	DebounceConfirmer,
	DetectionState,
)
from vigil.detection.devices import DeviceEvent, DeviceEventType, DeviceTracker
from vigil.detection.fusion import PresenceChange, PresenceFusion
from vigil.detection.motion import IntrusionTrigger, MotionConfig, MotionIntrusionConfirmer
from vigil.detection.throttle import NotificationThrottle

__all__ = [
	"DebounceConfirmer",
	"ConfirmerConfig",
	"ConfirmedEvent",
	"DetectionState",
	# Fusion
	"PresenceFusion",
	"PresenceChange",
	# Devices
	"DeviceTracker",
	"DeviceEvent",
	"DeviceEventType",
	# Motion
	"MotionIntrusionConfirmer",
	"MotionConfig",
	"IntrusionTrigger",
	"NotificationThrottle",
]
