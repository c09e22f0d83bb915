"""
Utility modules for the dictation relay.

This module provides error codes, structured logging, CloudWatch metrics
and client message parsing shared by the session services.
"""

from .error_codes import ErrorCode, get_error_message, error_code_for_exception
from .structured_logger import (
    StructuredLogger,
    LoggingContext,
    get_structured_logger,
    configure_logging
)
from .websocket_parser import parse_client_message

__all__ = [
    'ErrorCode',
    'get_error_message',
    'error_code_for_exception',
    'StructuredLogger',
    'LoggingContext',
    'get_structured_logger',
    'configure_logging',
    'parse_client_message'
]
