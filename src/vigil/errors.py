"""Error taxonomy for the detection engines.

Absence of evidence is never an error. Only malformed configuration is
fatal; everything else is absorbed by the caller that owns the stream.
"""
from __future__ import annotations


class VigilError(Exception):
	"""Base class for all vigil errors."""


class ConfigurationError(VigilError, ValueError):
	"""Raised at construction time for non-positive or inconsistent durations."""


class OutOfOrderEvidenceError(VigilError):
	"""Evidence timestamp went backwards for a single engine instance."""

	def __init__(self, source: str, now: float, last: float) -> None:
		super().__init__(f"{source}: timestamp {now} precedes last observed {last}")
		self.source = source
		self.now = now
		self.last = last


class TransientSourceError(VigilError):
	"""An evidence source failed for a single tick.

	Treated as absence with grace, never fatal.
	"""

	def __init__(self, source: str, reason: str = "") -> None:
		super().__init__(f"{source}: {reason}" if reason else source)
		self.source = source
		self.reason = reason
