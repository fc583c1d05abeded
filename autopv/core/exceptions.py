"""
autopv.core.exceptions
======================
All custom exceptions for the autopv pipeline.

Packaging, archival and cleanup failures are NOT exceptions: those stages
return structured results (see autopv.core.data_types) so that a run can
still report partial success.
"""


class AutoPVError(Exception):
    """Base class for all autopv exceptions."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message


class ConfigError(AutoPVError):
    """
    Raised when a configuration is invalid, missing required fields,
    or contains unsupported values.
    """
    pass


class PreconditionError(AutoPVError):
    """
    Raised when a required secret (GitHub token, archive passphrase) is
    missing before the stage that depends on it starts. Always fatal.
    """
    pass


class InvalidTransitionError(AutoPVError):
    """Raised when the orchestrator is asked to enter a state it cannot reach."""
    pass


class PackagingError(AutoPVError):
    """
    Raised by the orchestrator when a packaging or archiving result came
    back unsuccessful. The builders themselves never raise it.
    """
    pass


class ScrubError(AutoPVError):
    """Raised when the scrubber cannot process a value."""
    pass


class ScrubDepthError(ScrubError):
    """Raised when a value is nested deeper than the configured limit."""
    pass


class UnsupportedValueError(ScrubError):
    """Raised when a value is not one of null/bool/number/string/array/object."""
    pass


class ClassificationError(AutoPVError):
    """
    Raised when the classification stage cannot produce a result.

    Causes:
      - The reasoning service call failed (after retries)
      - The reasoning service returned an empty response
    """
    pass


class MalformedResponseError(ClassificationError):
    """
    Raised when the reasoning service answered, but the answer is not a
    JSON array of classification objects.
    """
    pass


class ProviderError(AutoPVError):
    """Raised when a provider export fails."""
    pass


class CredentialError(ProviderError):
    """Raised when a provider credential is missing, rejected or revoked."""
    pass


class ChunkProcessingError(AutoPVError):
    """
    Raised when a worker fails inside ChunkProcessor.
    The worker's own exception is kept on `.original` and as `__cause__`.
    """
    def __init__(self, message: str, original: BaseException, details: dict = None):
        super().__init__(message, details)
        self.original = original


class CredentialStoreError(AutoPVError):
    """Raised when the encrypted credential store cannot be read or written."""
    pass
