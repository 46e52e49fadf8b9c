"""Failure taxonomy shared by the Square client and the orchestrator.

Failures carry a :class:`FailureKind` so callers can tell a bad request
from a Square outage from an unavailable slot without parsing messages.
The kind is only turned into prose when the result goes back to Vapi.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    UNAVAILABLE = "unavailable"
    INVARIANT = "invariant"
    INTERNAL = "internal"


class BookingError(Exception):
    """A failure inside the booking pipeline, tagged with its kind."""

    def __init__(self, detail: str, kind: FailureKind = FailureKind.INTERNAL):
        self.kind = kind
        self.detail = detail
        super().__init__(detail)
