"""
Session data models.

A Session is the unit of work for one client connection, from connect to
close. It owns the cancellation signal shared by the session's tasks and
the transcript accumulator the reconciler and archiver operate on.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from scribe_relay.exceptions import InvalidStateTransitionError
from scribe_relay.models.configuration import RecognitionConfig


class SessionState(str, Enum):
    """Lifecycle states of a relay session."""

    STARTING = 'starting'
    ACTIVE = 'active'
    DRAINING = 'draining'
    CLOSED = 'closed'


ALLOWED_TRANSITIONS = {
    SessionState.STARTING: {SessionState.ACTIVE, SessionState.CLOSED},
    SessionState.ACTIVE: {SessionState.DRAINING},
    SessionState.DRAINING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


@dataclass
class TranscriptState:
    """
    Accumulator of accepted final segments.

    Segments are append-only; once appended a segment's text is never
    changed. All reads and writes go through `lock`.

    Attributes:
        segments: Accepted segments in acceptance order
        last_accepted: Text of the most recently accepted segment
        lock: Guards segments and last_accepted
    """

    segments: List[str] = field(default_factory=list)
    last_accepted: str = ''
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def append(self, text: str) -> None:
        """Append an accepted segment. Caller must hold `lock`."""
        self.segments.append(text)
        self.last_accepted = text

    def recent(self, window: int) -> List[str]:
        """Return the last `window` segments, most recent first."""
        if window <= 0:
            return []
        return list(reversed(self.segments[-window:]))

    def full_text(self) -> str:
        """Join all segments with a single space."""
        return ' '.join(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    async def snapshot(self) -> List[str]:
        """Return a copy of the segment list taken under the lock."""
        async with self.lock:
            return list(self.segments)


@dataclass
class Session:
    """
    State owned by one client connection.

    Attributes:
        config: Recognition parameters for this connection
        session_id: Unique session identifier (uuid4 hex)
        state: Current lifecycle state
        cancel_event: Cancellation signal shared by all session tasks
        transcript: Accepted segments
        created_at: Unix timestamp of creation
        aborted: True when the session was cancelled from outside
    """

    config: RecognitionConfig
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.STARTING
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    transcript: TranscriptState = field(default_factory=TranscriptState)
    created_at: float = field(default_factory=time.time)
    aborted: bool = False

    def transition(self, new_state: SessionState) -> SessionState:
        """
        Move the session to a new lifecycle state.

        Args:
            new_state: Requested state

        Returns:
            The previous state

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(self.state, new_state)

        old_state = self.state
        self.state = new_state
        return old_state

    def cancel(self) -> None:
        """Fire the session's cancellation signal."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def duration_seconds(self) -> float:
        return time.time() - self.created_at
