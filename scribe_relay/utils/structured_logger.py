"""
Structured JSON logging for relay sessions.

This module provides a structured logger that outputs JSON-formatted
logs with session correlation IDs, component and operation fields, so a
single session can be followed across its concurrent tasks.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Optional


class StructuredLogger:
    """
    Structured JSON logger for relay components.

    Outputs logs in JSON format with:
    - Timestamp (ISO 8601)
    - Log level
    - Correlation IDs (sessionId, connectionId)
    - Component and operation
    - Message and additional context
    """

    def __init__(
        self,
        component: str,
        session_id: Optional[str] = None,
        connection_id: Optional[str] = None
    ):
        """
        Initialize structured logger.

        Args:
            component: Component name (e.g., 'SessionController', 'TranscriptArchiver')
            session_id: Session identifier for correlation
            connection_id: Client address or connection identifier
        """
        self.component = component
        self.session_id = session_id
        self.connection_id = connection_id
        self.logger = logging.getLogger(f'scribe_relay.{component}')

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        **kwargs
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Log message
            operation: Operation being performed
            **kwargs: Additional context fields

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'message': message
        }

        if self.session_id:
            log_entry['sessionId'] = self.session_id
        if self.connection_id:
            log_entry['connectionId'] = self.connection_id

        if operation:
            log_entry['operation'] = operation

        if kwargs:
            log_entry['context'] = kwargs

        return json.dumps(log_entry, default=str)

    def debug(self, message: str, operation: Optional[str] = None, **kwargs) -> None:
        """Log debug message."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_log('DEBUG', message, operation, **kwargs))

    def info(self, message: str, operation: Optional[str] = None, **kwargs) -> None:
        """Log info message."""
        self.logger.info(self._format_log('INFO', message, operation, **kwargs))

    def warning(self, message: str, operation: Optional[str] = None, **kwargs) -> None:
        """Log warning message."""
        self.logger.warning(self._format_log('WARNING', message, operation, **kwargs))

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        error: Optional[Exception] = None,
        **kwargs
    ) -> None:
        """
        Log error message.

        Args:
            message: Log message
            operation: Operation being performed
            error: Exception object if available
            **kwargs: Additional context
        """
        if error:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_message'] = str(error)

        self.logger.error(self._format_log('ERROR', message, operation, **kwargs))

    def log_websocket_message(
        self,
        direction: str,
        message_type: str,
        message_size: int
    ) -> None:
        """
        Log WebSocket message at DEBUG level.

        Args:
            direction: 'inbound' or 'outbound'
            message_type: Type of message (audio, control, partial, final, ...)
            message_size: Size of message in bytes
        """
        self.debug(
            f'WebSocket message {direction}',
            operation='websocket_message',
            direction=direction,
            message_type=message_type,
            message_size=message_size
        )

    def log_transcribe_event(self, event_type: str, **kwargs) -> None:
        """Log Transcribe event at DEBUG level."""
        self.debug(
            f'Transcribe event: {event_type}',
            operation='transcribe_event',
            event_type=event_type,
            **kwargs
        )

    def log_state_change(self, state_type: str, old_value: Any, new_value: Any) -> None:
        """
        Log state change at INFO level.

        Args:
            state_type: Type of state (sessionState, ...)
            old_value: Previous value
            new_value: New value
        """
        self.info(
            f'State change: {state_type}',
            operation='state_change',
            state_type=state_type,
            old_value=str(old_value),
            new_value=str(new_value)
        )


class LoggingContext:
    """
    Context manager for logging operation duration.

    Automatically logs operation start, end, and duration.
    """

    def __init__(self, logger: StructuredLogger, operation: str, **kwargs):
        self.logger = logger
        self.operation = operation
        self.context = kwargs
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        """Log operation start."""
        self.start_time = time.time()
        self.logger.debug(
            f'Starting operation: {self.operation}',
            operation=self.operation,
            **self.context
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log operation end and duration."""
        if self.start_time is None:
            return

        self.duration_ms = (time.time() - self.start_time) * 1000

        if exc_type is not None:
            self.logger.error(
                f'Operation failed: {self.operation}',
                operation=self.operation,
                error=exc_val,
                duration_ms=self.duration_ms,
                **self.context
            )
        else:
            self.logger.debug(
                f'Completed operation: {self.operation}',
                operation=self.operation,
                duration_ms=self.duration_ms,
                **self.context
            )


def get_structured_logger(
    component: str,
    session_id: Optional[str] = None,
    connection_id: Optional[str] = None
) -> StructuredLogger:
    """
    Factory function for creating StructuredLogger instances.

    Args:
        component: Name of the component (e.g., 'SessionController')
        session_id: Optional session ID for context
        connection_id: Optional connection ID for context

    Returns:
        Configured StructuredLogger instance

    Example:
        >>> logger = get_structured_logger('SessionController', session_id='9f2c')
        >>> logger.info('Connection established')
    """
    return StructuredLogger(
        component=component,
        session_id=session_id,
        connection_id=connection_id
    )


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure process-wide logging.

    Sets up the root logger to output bare messages (structured loggers
    already format JSON). Should be called once at process start.

    Args:
        log_level: Level name; defaults to the LOG_LEVEL environment variable
    """
    log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(message)s',
        force=True
    )

    # Disable boto3 debug logging unless explicitly enabled
    if log_level != 'DEBUG':
        logging.getLogger('boto3').setLevel(logging.WARNING)
        logging.getLogger('botocore').setLevel(logging.WARNING)
