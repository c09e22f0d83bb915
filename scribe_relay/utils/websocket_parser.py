"""
WebSocket message parser for client control frames.

Client text frames carry JSON control commands. This module validates
their structure and turns them into ControlMessage objects; anything
else is a protocol violation that the session logs and ignores.
"""

import json
import logging
from typing import Any, Dict, Union

from scribe_relay.exceptions import ProtocolViolationError
from scribe_relay.models.websocket_messages import CONTROL_ACTIONS, ControlMessage

logger = logging.getLogger(__name__)

MAX_CONTROL_MESSAGE_BYTES = 4096


def parse_client_message(raw: Union[str, bytes]) -> ControlMessage:
    """
    Parse a client text frame into a control message.

    Expected format: {"type": "control", "action": "stop"}

    Args:
        raw: Text frame payload

    Returns:
        ControlMessage for a recognised action

    Raises:
        ProtocolViolationError: If the frame is not a valid control message

    Examples:
        >>> parse_client_message('{"type": "control", "action": "stop"}').is_stop
        True
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ProtocolViolationError(f"Control frame is not valid UTF-8: {e}") from e

    if len(raw) > MAX_CONTROL_MESSAGE_BYTES:
        raise ProtocolViolationError(
            f"Control frame exceeds {MAX_CONTROL_MESSAGE_BYTES} bytes"
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolViolationError(f"Invalid JSON control frame: {e}") from e

    return validate_control_message(data)


def validate_control_message(data: Dict[str, Any]) -> ControlMessage:
    """
    Validate a decoded control message.

    Required fields:
    - type: 'control'
    - action: one of CONTROL_ACTIONS

    Args:
        data: Decoded JSON payload

    Returns:
        ControlMessage

    Raises:
        ProtocolViolationError: If a field is missing or has an unknown value
    """
    if not isinstance(data, dict):
        raise ProtocolViolationError('Message must be a JSON object')

    message_type = data.get('type')
    if message_type != 'control':
        raise ProtocolViolationError(f'Unknown message type: {message_type}')

    action = data.get('action')
    if not action:
        raise ProtocolViolationError('Missing required field: action')

    if action not in CONTROL_ACTIONS:
        raise ProtocolViolationError(f'Unknown action: {action}')

    return ControlMessage(action=action)
