"""Debounce, fusion and throttling engines for presence and intrusion detection."""
__version__ = "0.3.0"

from vigil.detection import (
	ConfirmedEvent,
	ConfirmerConfig,
	DebounceConfirmer,
	DetectionState,
	MotionIntrusionConfirmer,
	NotificationThrottle,
	PresenceFusion,
)
from vigil.dispatch import Acknowledgement, Alert, AlertDispatcher, AlertKind
from vigil.errors import ConfigurationError, OutOfOrderEvidenceError, TransientSourceError
from vigil.monitor import PresenceMonitor
from vigil.sources.base import EvidenceSample, SignalSource

__all__ = [
	"DebounceConfirmer",
	"ConfirmerConfig",
	"ConfirmedEvent",
	"DetectionState",
	"PresenceFusion",
	"MotionIntrusionConfirmer",
	"NotificationThrottle",
	"PresenceMonitor",
	"AlertDispatcher",
	"Alert",
	"AlertKind",
	"Acknowledgement",
	"EvidenceSample",
	"SignalSource",
	"ConfigurationError",
	"OutOfOrderEvidenceError",
	"TransientSourceError",
]
