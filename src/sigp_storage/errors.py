"""Upload lifecycle error taxonomy.

Each client-facing error carries the HTTP status the API surfaces it with.
"""


class UploadError(Exception):
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTarget(UploadError):
    """Target path or content type violates naming/ownership rules."""

    status_code = 422


class QuotaExceeded(UploadError):
    """Declared size exceeds the configured limit."""

    status_code = 413


class IntentNotFound(UploadError):
    """Unknown intent, or one already reclaimed."""

    status_code = 404


class IntentExpired(UploadError):
    """Intent is past its TTL; the client must request a new URL."""

    status_code = 410


class UploadMismatch(UploadError):
    """Declared and actual upload metadata disagree."""

    status_code = 409


class ObjectNotUploaded(UploadError):
    """Confirm was called but no object exists at the intent's key."""

    status_code = 409


class StoreUnavailable(UploadError):
    """Object store or cache could not be reached. Retryable."""

    status_code = 503


class ObjectNotFound(Exception):
    """Raised by the object store gateway when a key does not exist."""


class ReconcileEntryFailed(Exception):
    """A single ledger entry could not be reclaimed during a sweep."""

    def __init__(self, intent_id: str, reason: str) -> None:
        super().__init__(f"Failed to reclaim intent {intent_id}: {reason}")
        self.intent_id = intent_id
        self.reason = reason
