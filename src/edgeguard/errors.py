"""Error taxonomy.

Every failure the core raises on purpose derives from EdgeGuardError, so the
CLI can map it to a non-zero exit without swallowing real bugs.

    ValidationError       - Malformed CLI/config input
    DataIntegrityError    - Event missing a side, non-complementary labels, missing core fields
    LeakageError          - Temporal or event-id overlap between train and test
    InsufficientDataError - Too few seasons, calibration events, or settled bets
    PipelineFailure       - A governance stage failed
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class EdgeGuardError(Exception):
    """Base class for expected, reportable failures."""


class ValidationError(EdgeGuardError, ValueError):
    """Configuration or command-line input is malformed."""


class DataIntegrityError(EdgeGuardError):
    """The feature table violates the two-sided event invariant."""


class LeakageError(EdgeGuardError):
    """Train and test windows overlap in time or in event ids."""


class InsufficientDataError(EdgeGuardError):
    """Not enough data to evaluate safely."""


class PipelineFailure(EdgeGuardError):
    """A governance stage failed; carries structured per-stage failure metadata."""

    def __init__(
        self,
        message: str,
        failures: Optional[List[Dict[str, Any]]] = None,
        report_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.failures = failures or []
        self.report_path = report_path


__all__ = [
    "EdgeGuardError",
    "ValidationError",
    "DataIntegrityError",
    "LeakageError",
    "InsufficientDataError",
    "PipelineFailure",
]
