# src/ossf_attest/core/exceptions.py
"""Custom exception hierarchy for ossf-attest."""


class AttestError(Exception):
    """Base exception for all ossf-attest errors."""
    pass


class ConfigurationError(AttestError):
    """Raised when the configuration document or an output path is invalid."""
    pass


class SecurityError(AttestError):
    """Raised when a command, argument or path violates the execution policy."""
    pass


class ValidationError(SecurityError):
    """Raised when installation parameters fail validation."""
    pass


class InstallationError(AttestError):
    """Raised when a tool cannot be installed or verified."""
    pass


class ToolExecutionError(AttestError):
    """Raised when a tool fails to execute properly."""
    pass


class CommandFailedError(ToolExecutionError):
    """A spawned process could not start, timed out or exited non-zero."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class PersistenceError(AttestError):
    """Raised when an artifact cannot be written to the output directory."""
    pass
