"""
Data models for the live dictation relay.

This module provides dataclasses for recognition configuration,
transcript events, WebSocket messages and per-connection session state.
"""

from .configuration import RecognitionConfig
from .transcription_results import (
    PartialTranscript,
    FinalTranscript,
    TranscriptEvent
)
from .websocket_messages import (
    ServerMessage,
    PartialMessage,
    FinalMessage,
    SavedMessage,
    ErrorMessage,
    ControlMessage
)
from .session import Session, SessionState, TranscriptState

__all__ = [
    'RecognitionConfig',
    'PartialTranscript',
    'FinalTranscript',
    'TranscriptEvent',
    'ServerMessage',
    'PartialMessage',
    'FinalMessage',
    'SavedMessage',
    'ErrorMessage',
    'ControlMessage',
    'Session',
    'SessionState',
    'TranscriptState'
]
