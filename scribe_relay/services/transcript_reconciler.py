"""
Reconciliation of overlapping final transcript results.

AWS Transcribe may re-emit a final result that repeats, extends or
contains an earlier final. The reconciler filters the stream of final
texts so each logical utterance reaches the client and storage once.

Rules, given incoming text T:
1. T is empty: discard.
2. T equals the last accepted segment: discard.
3. T contains the last accepted segment: remove its first occurrence,
   strip whitespace, accept the remainder (the remainder becomes the
   last accepted segment); discard if nothing remains or if the
   remainder is itself one of the three most recent segments.
4. One of the three most recent segments is a substring of T: discard.
5. Otherwise accept T verbatim.

This is a string-containment heuristic. It can discard genuinely new
speech that happens to contain an earlier segment, and rule 4 only
looks at a fixed window of segments. Time-aligned merging would need
result timestamps, which this component does not use.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scribe_relay.models.session import TranscriptState

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 3


class ReconcileOutcome(str, Enum):
    """Classification of one final result."""

    EMPTY = 'empty'
    EXACT_DUPLICATE = 'exact_duplicate'
    EXTENSION = 'extension'
    PURE_REPEAT = 'pure_repeat'
    CONTAINS_RECENT_SEGMENT = 'contains_recent_segment'
    NEW = 'new'


@dataclass(frozen=True)
class ReconcileDecision:
    """
    Result of classifying a final text against transcript state.

    Attributes:
        outcome: How the text relates to what was already accepted
        text: Segment to append when accepted, else None
        matched_segment: Earlier segment that caused a discard, if any
    """

    outcome: ReconcileOutcome
    text: Optional[str] = None
    matched_segment: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.text is not None


class TranscriptReconciler:
    """
    Streaming filter turning raw final results into transcript segments.

    The reconciler holds no state of its own; it reads and appends to a
    session's TranscriptState under that state's lock, so two finals can
    never race on the last accepted segment.

    Examples:
        >>> reconciler = TranscriptReconciler()
        >>> state = TranscriptState()
        >>> await reconciler.reconcile(state, 'patient reports pain')
        'patient reports pain'
        >>> await reconciler.reconcile(state, 'patient reports pain in left arm')
        'in left arm'
        >>> await reconciler.reconcile(state, 'in left arm')
    """

    def __init__(self, history_window: int = DEFAULT_HISTORY_WINDOW):
        """
        Initialize reconciler.

        Args:
            history_window: Number of recent segments checked for containment
        """
        if history_window < 0:
            raise ValueError(f"history_window must be non-negative, got {history_window}")
        self.history_window = history_window

    def classify(self, state: TranscriptState, text: str) -> ReconcileDecision:
        """
        Classify a final text without modifying state.

        Caller must hold state.lock if other tasks may append concurrently.

        Args:
            state: Transcript state of the session
            text: Final result text

        Returns:
            ReconcileDecision
        """
        if not text:
            return ReconcileDecision(ReconcileOutcome.EMPTY)

        last = state.last_accepted

        # Nothing accepted yet: an empty last segment would match everything
        if not last:
            return ReconcileDecision(ReconcileOutcome.NEW, text=text)

        if text == last:
            return ReconcileDecision(ReconcileOutcome.EXACT_DUPLICATE, matched_segment=last)

        if last in text:
            remainder = text.replace(last, '', 1).strip()
            if not remainder:
                return ReconcileDecision(ReconcileOutcome.PURE_REPEAT, matched_segment=last)

            # Restatement of the previous extension: the remainder was already accepted
            recent = state.recent(self.history_window)
            if remainder in recent:
                return ReconcileDecision(ReconcileOutcome.PURE_REPEAT, matched_segment=remainder)

            return ReconcileDecision(
                ReconcileOutcome.EXTENSION,
                text=remainder,
                matched_segment=last
            )

        for segment in state.recent(self.history_window):
            if segment in text:
                return ReconcileDecision(
                    ReconcileOutcome.CONTAINS_RECENT_SEGMENT,
                    matched_segment=segment
                )

        return ReconcileDecision(ReconcileOutcome.NEW, text=text)

    async def reconcile(self, state: TranscriptState, text: str) -> Optional[str]:
        """
        Reconcile a final text and append it to the transcript if accepted.

        Args:
            state: Transcript state of the session
            text: Final result text

        Returns:
            The accepted segment, or None when the text was discarded
        """
        decision = await self.apply(state, text)
        return decision.text

    async def apply(self, state: TranscriptState, text: str) -> ReconcileDecision:
        """
        Classify and append in one critical section.

        Args:
            state: Transcript state of the session
            text: Final result text

        Returns:
            ReconcileDecision describing what happened
        """
        async with state.lock:
            decision = self.classify(state, text)
            if decision.accepted:
                state.append(decision.text)

        if decision.outcome == ReconcileOutcome.EXTENSION:
            logger.debug(f"Extracted new part from extended transcript: {decision.text!r}")
        elif decision.accepted:
            logger.debug(f"Accepted transcript segment #{len(state)}")
        elif decision.outcome != ReconcileOutcome.EMPTY:
            logger.debug(
                f"Discarded final result ({decision.outcome.value}): "
                f"matched {decision.matched_segment!r}"
            )

        return decision
