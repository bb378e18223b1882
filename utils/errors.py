"""Error types raised by the survey record store and its helpers."""

from __future__ import annotations


class SurveyError(Exception):
    """Base class for record store errors."""


class ValidationError(SurveyError):
    """A record cannot be saved because a required field is missing."""


class SoftValidationWarning(SurveyError):
    """The identifier does not match the scan-code pattern.

    The save was not performed. Callers that want to keep the identifier
    anyway re-issue the save with confirmation.
    """

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Code {record_id!r} does not match NS-####-###")
        self.record_id = record_id


class StorageError(SurveyError):
    """The underlying SQLite store could not be opened, read or written."""


class AttachmentError(SurveyError):
    """An uploaded image could not be decoded or re-encoded."""
