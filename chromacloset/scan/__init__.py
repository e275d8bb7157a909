"""Scan-and-review workflow."""

from .registry import SessionRegistry, UnknownSession
from .session import (
    Candidate,
    ConfirmationRequired,
    EmptyBatch,
    InvalidTransition,
    OutcomeKind,
    ReviewBatch,
    ReviewSession,
    ScanInProgress,
    ScanOutcome,
    ScanState,
    SessionClosed,
)

__all__ = [
    "Candidate",
    "ConfirmationRequired",
    "EmptyBatch",
    "InvalidTransition",
    "OutcomeKind",
    "ReviewBatch",
    "ReviewSession",
    "ScanInProgress",
    "ScanOutcome",
    "ScanState",
    "SessionClosed",
    "SessionRegistry",
    "UnknownSession",
]
