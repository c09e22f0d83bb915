"""
Custom exceptions for the dictation relay.

This module defines the exception hierarchy used across a relay session.
Every failure is local to one session; the session controller maps each
exception type to a single user-facing error message.
"""


class RelayError(Exception):
    """
    Base exception for relay errors.

    All relay-specific exceptions inherit from this base class,
    allowing callers to catch every session-level failure at once.
    """
    pass


class ClientConnectionError(RelayError):
    """
    Raised when the client transport is broken.

    A broken client connection terminates the session without retry.
    Outbound messages can no longer be delivered, but the accumulated
    transcript is still archived.
    """
    pass


class ClientDisconnected(ClientConnectionError):
    """Raised when the client closed the connection."""

    def __init__(self, code: int = 1000, reason: str = ''):
        super().__init__(f"Client disconnected (code={code})")
        self.code = code
        self.reason = reason


class UpstreamUnavailableError(RelayError):
    """
    Raised when the recognition service failed to start or broke mid-stream.

    This is session-fatal. Resuming would require re-sending audio that
    has already been consumed, so no reconnection is attempted.

    Attributes:
        original_error: Exception raised by the transcription SDK (if any)
    """

    def __init__(self, message: str, original_error: Exception = None):
        """
        Initialize UpstreamUnavailableError.

        Args:
            message: Error message
            original_error: Original exception that caused the failure (optional)
        """
        super().__init__(message)
        self.original_error = original_error


class TransportFailureError(UpstreamUnavailableError):
    """
    Raised when an audio frame cannot be sent to the recognition service.

    Also raised when a send is attempted after the end-of-stream marker.
    """
    pass


class StorageFailureError(RelayError):
    """
    Raised when the transcript could not be written to object storage.

    Attributes:
        key: Object key that was being written
        original_error: Exception raised by the storage client (if any)
    """

    def __init__(self, message: str, key: str = None, original_error: Exception = None):
        super().__init__(message)
        self.key = key
        self.original_error = original_error


class ProtocolViolationError(RelayError):
    """
    Raised when a client text frame is malformed or carries an unknown action.

    Protocol violations are logged and ignored; the session continues.
    """
    pass


class InvalidStateTransitionError(RelayError):
    """Raised when a session is moved to a state it cannot reach."""

    def __init__(self, current_state, requested_state):
        super().__init__(
            f"Invalid session transition: {current_state.value} -> "
            f"{requested_state.value}"
        )
        self.current_state = current_state
        self.requested_state = requested_state


class ConfigurationError(RelayError):
    """
    Raised when configuration is invalid.

    This exception is raised when:
    - An environment variable cannot be parsed
    - A recognition parameter is outside its supported set

    Attributes:
        validation_errors: List of validation error messages

    Examples:
        >>> raise ConfigurationError(
        ...     "Invalid configuration",
        ...     validation_errors=["SAMPLE_RATE_HZ must be an integer"]
        ... )
    """

    def __init__(self, message: str, validation_errors: list = None):
        """
        Initialize ConfigurationError.

        Args:
            message: Error message
            validation_errors: List of validation error messages (optional)
        """
        super().__init__(message)
        self.validation_errors = validation_errors or []

    def __str__(self):
        """Return string representation with validation errors if available."""
        if self.validation_errors:
            errors_str = "; ".join(self.validation_errors)
            return f"{super().__str__()}: {errors_str}"
        return super().__str__()
