# app/domain/common/errors.py
from __future__ import annotations


class DraftError(Exception):
    """Base error raised by the client-side draft session."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class ActionRejected(DraftError):
    """The room server refused an action (bad input, wrong state, not allowed)."""


class CatalogUnavailable(DraftError):
    """Character catalog could not be loaded or is empty. Fatal to match setup."""


class PersistenceFailed(DraftError):
    """A state write to the room server failed."""
