"""
Error taxonomy shared by every domain.

Validation and conflict errors are raised synchronously to the immediate caller and never leave
partial writes behind. Storage errors are retryable; the caller (request handler or batch job)
decides the retry policy.
"""


class FieldRoutesError(Exception):
    """Base class for domain errors"""

    code = "error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(FieldRoutesError):
    """Bad input: invalid recurrence config, empty miss reason, missing reschedule target"""

    code = "validation_failed"
    status_code = 422


class NotFoundError(FieldRoutesError):
    """Entity missing, or owned by a different user"""

    code = "not_found"
    status_code = 404


class TransitionConflict(FieldRoutesError):
    """Illegal state transition or a stale concurrent write"""

    code = "transition_conflict"
    status_code = 409


class StorageError(FieldRoutesError):
    """Database or transaction failure. Nothing was applied."""

    code = "storage_error"
    status_code = 503
    retryable = True


class RecurrenceConfigError(FieldRoutesError):
    """The recurrence engine observed a config that should have been rejected at write time"""

    code = "recurrence_config_error"
    status_code = 500
