"""Evidence source contract and scripted sources."""
from .base import EvidenceSample, SeenDevice, SignalSource, SourceKind, now_ms
from .mock import MockAccelerometer, ScriptedSource

__all__ = [
	"SignalSource",
	"EvidenceSample",
	"SeenDevice",
	"SourceKind",
	"now_ms",
	"ScriptedSource",
	"MockAccelerometer",
]
