"""
WebSocket message schemas.

This module provides the closed set of messages exchanged with the
browser client. Each message type is its own dataclass carrying a fixed
'type' discriminant, so a message can only hold the fields that belong
to it.

Server -> client:
    {"type": "partial", "text": ...}
    {"type": "final", "text": ...}
    {"type": "saved", "key": ...}
    {"type": "error", "text": ...}

Client -> server (text frame):
    {"type": "control", "action": "stop"}
"""

import json
from dataclasses import dataclass, asdict
from typing import Any, ClassVar, Dict


@dataclass(frozen=True)
class ServerMessage:
    """Base class for all server -> client messages."""

    message_type: ClassVar[str] = ''

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary, discriminant first."""
        return {'type': self.message_type, **asdict(self)}

    def to_json(self) -> str:
        """Convert message to JSON string."""
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class PartialMessage(ServerMessage):
    """Interim hypothesis, superseded by the next partial or final."""

    message_type: ClassVar[str] = 'partial'

    text: str


@dataclass(frozen=True)
class FinalMessage(ServerMessage):
    """Reconciled, de-duplicated utterance."""

    message_type: ClassVar[str] = 'final'

    text: str


@dataclass(frozen=True)
class SavedMessage(ServerMessage):
    """Persistence completed; key identifies the stored object."""

    message_type: ClassVar[str] = 'saved'

    key: str


@dataclass(frozen=True)
class ErrorMessage(ServerMessage):
    """Fatal or non-fatal fault description."""

    message_type: ClassVar[str] = 'error'

    text: str



CONTROL_ACTIONS = ('stop',)


@dataclass(frozen=True)
class ControlMessage:
    """
    Client control command.

    Attributes:
        action: Requested action; 'stop' requests graceful termination
    """

    action: str

    @property
    def is_stop(self) -> bool:
        return self.action == 'stop'
