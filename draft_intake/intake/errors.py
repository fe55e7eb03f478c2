"""Exception taxonomy for the intake pipeline.

Errors raised before a job exists (access, lookups, validation) propagate to
the caller. Strategy errors (subclasses of ``StrategyFailure``) are caught by the
dispatcher and recorded on the job instead.
"""


class IntakeError(RuntimeError):
    """Base class for intake errors. ``status_code`` is the HTTP mapping."""

    status_code = 500


class AccessDenied(IntakeError):
    status_code = 403


class NotFound(IntakeError):
    status_code = 404


class InvalidRequest(IntakeError):
    status_code = 400


class UnsupportedJobType(IntakeError):
    status_code = 400


class NoReferencesAvailable(IntakeError):
    status_code = 400


class ExtractionPending(IntakeError):
    """Raised when consolidation is requested while jobs are still active."""

    status_code = 409


class RetryLimitExceeded(IntakeError):
    status_code = 409


class VersionConflict(IntakeError):
    """Raised when a version number is already taken in the project."""

    status_code = 409


class ConfigurationError(IntakeError):
    status_code = 500


class StrategyFailure(IntakeError):
    status_code = 502


class DownloadFailure(StrategyFailure):
    """Raised when a blob cannot be read from storage."""


class ProviderFailure(StrategyFailure):
    """Raised when the generative backend errors or returns empty/blocked output."""


class NetworkFailure(StrategyFailure):
    """Raised when a raw page fetch fails."""
