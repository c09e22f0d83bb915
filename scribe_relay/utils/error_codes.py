"""
Standardized error codes for the dictation relay.

This module provides a centralized enumeration of the error codes a
session can report, and the user-facing text sent to the client in an
'error' message for each of them.
"""

from enum import Enum

from scribe_relay.exceptions import (
    ClientConnectionError,
    ConfigurationError,
    ProtocolViolationError,
    RelayError,
    StorageFailureError,
    TransportFailureError,
    UpstreamUnavailableError,
)


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the relay.

    Error codes are organized by category:
    - Connection (CONNECTION_*)
    - Upstream recognition service (UPSTREAM_*)
    - Storage (STORAGE_*)
    - Validation (VALIDATION_*)
    - Internal Errors (INTERNAL_*)
    """

    # Connection Errors
    CONNECTION_CLOSED = 'CONNECTION_CLOSED'

    # Upstream Errors
    UPSTREAM_START_FAILED = 'UPSTREAM_START_FAILED'
    UPSTREAM_STREAM_FAILED = 'UPSTREAM_STREAM_FAILED'
    UPSTREAM_SEND_FAILED = 'UPSTREAM_SEND_FAILED'

    # Storage Errors
    STORAGE_WRITE_FAILED = 'STORAGE_WRITE_FAILED'

    # Validation Errors
    VALIDATION_INVALID_MESSAGE_FORMAT = 'VALIDATION_INVALID_MESSAGE_FORMAT'
    VALIDATION_INVALID_PARAMETER = 'VALIDATION_INVALID_PARAMETER'

    # Internal Errors
    INTERNAL_SERVER_ERROR = 'INTERNAL_SERVER_ERROR'
    INTERNAL_CONFIGURATION_ERROR = 'INTERNAL_CONFIGURATION_ERROR'


# Error code to user-facing message mapping
ERROR_CODE_TO_MESSAGE = {
    ErrorCode.CONNECTION_CLOSED: 'Connection has been closed',

    ErrorCode.UPSTREAM_START_FAILED: 'Failed to start transcription',
    ErrorCode.UPSTREAM_STREAM_FAILED: 'Transcription stream failed',
    ErrorCode.UPSTREAM_SEND_FAILED: 'Failed to send audio to transcription service',

    ErrorCode.STORAGE_WRITE_FAILED: 'Failed to save transcription',

    ErrorCode.VALIDATION_INVALID_MESSAGE_FORMAT: 'Invalid message format',
    ErrorCode.VALIDATION_INVALID_PARAMETER: 'Invalid parameter value',

    ErrorCode.INTERNAL_SERVER_ERROR: 'Internal server error',
    ErrorCode.INTERNAL_CONFIGURATION_ERROR: 'Configuration error',
}


def get_error_message(error_code: ErrorCode) -> str:
    """
    Get user-facing error message for error code.

    Args:
        error_code: Error code enum value

    Returns:
        User-facing error message
    """
    return ERROR_CODE_TO_MESSAGE.get(error_code, 'An error occurred')


def error_code_for_exception(error: Exception) -> ErrorCode:
    """
    Map a session failure to its error code.

    Args:
        error: Exception raised inside a session

    Returns:
        Matching ErrorCode (INTERNAL_SERVER_ERROR for unknown failures)

    Examples:
        >>> error_code_for_exception(StorageFailureError('boom'))
        <ErrorCode.STORAGE_WRITE_FAILED: 'STORAGE_WRITE_FAILED'>
    """
    # Subclasses first
    if isinstance(error, TransportFailureError):
        return ErrorCode.UPSTREAM_SEND_FAILED
    if isinstance(error, UpstreamUnavailableError):
        return ErrorCode.UPSTREAM_STREAM_FAILED
    if isinstance(error, StorageFailureError):
        return ErrorCode.STORAGE_WRITE_FAILED
    if isinstance(error, ClientConnectionError):
        return ErrorCode.CONNECTION_CLOSED
    if isinstance(error, ProtocolViolationError):
        return ErrorCode.VALIDATION_INVALID_MESSAGE_FORMAT
    if isinstance(error, ConfigurationError):
        return ErrorCode.INTERNAL_CONFIGURATION_ERROR
    if isinstance(error, (RelayError, ValueError)):
        return ErrorCode.VALIDATION_INVALID_PARAMETER
    return ErrorCode.INTERNAL_SERVER_ERROR
