"""
Transcript event data models.

The recognition service emits a time-ordered sequence of events for a
stream. Each event is either a partial hypothesis, which later events
supersede, or a final result for an utterance.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class PartialTranscript:
    """
    Interim hypothesis from the recognition service.

    Partials are forwarded to the client unmodified and never stored.

    Attributes:
        text: Top-alternative transcript text
    """

    text: str

    @property
    def is_final(self) -> bool:
        return False


@dataclass(frozen=True)
class FinalTranscript:
    """
    Completed hypothesis for one utterance.

    Finals may restate, extend or repeat earlier finals and are always
    passed through the reconciler before reaching the client.

    Attributes:
        text: Top-alternative transcript text
    """

    text: str

    @property
    def is_final(self) -> bool:
        return True


TranscriptEvent = Union[PartialTranscript, FinalTranscript]
