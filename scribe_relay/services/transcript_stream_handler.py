"""
Conversion of AWS Transcribe streaming events into transcript events.

AWS Transcribe emits TranscriptEvent objects holding one or more results,
each with an IsPartial flag and ranked alternatives. Only the top
alternative is used. Results are converted in the order they appear so
the client sees them in the service's temporal order.
"""

import logging
from typing import List

from scribe_relay.models.transcription_results import (
    FinalTranscript,
    PartialTranscript,
    TranscriptEvent,
)

logger = logging.getLogger(__name__)


def parse_transcript_event(transcript_event) -> List[TranscriptEvent]:
    """
    Convert one Transcribe event into partial/final transcript events.

    Event structure (AWS Transcribe):
    {
        'Transcript': {
            'Results': [{
                'ResultId': 'result-123',
                'IsPartial': True/False,
                'Alternatives': [{'Transcript': 'patient reports pain'}]
            }]
        }
    }

    Malformed or empty results are skipped, never raised, because a
    single odd result must not end the stream.

    Args:
        transcript_event: amazon_transcribe.model.TranscriptEvent (or any
            object with the same attribute shape)

    Returns:
        Events in result order; empty list when nothing usable

    Examples:
        >>> events = parse_transcript_event(event)
        >>> [type(e).__name__ for e in events]
        ['PartialTranscript']
    """
    transcript = getattr(transcript_event, 'transcript', None)
    if transcript is None:
        logger.debug("Transcript event missing 'transcript' attribute, skipping")
        return []

    results = getattr(transcript, 'results', None)
    if not results:
        return []

    events: List[TranscriptEvent] = []
    for result in results:
        event = _convert_result(result)
        if event is not None:
            events.append(event)

    return events


def _convert_result(result):
    """
    Convert a single Transcribe result.

    Args:
        result: Transcription result from AWS Transcribe

    Returns:
        PartialTranscript, FinalTranscript, or None if the result is unusable
    """
    result_id = getattr(result, 'result_id', None) or '-'

    alternatives = getattr(result, 'alternatives', None)
    if not alternatives:
        logger.debug(f"Result {result_id} has no alternatives, skipping")
        return None

    # Alternatives are ranked; use the top one
    text = getattr(alternatives[0], 'transcript', None)
    if not isinstance(text, str) or not text:
        logger.debug(f"Result {result_id} has empty text, skipping")
        return None

    if getattr(result, 'is_partial', False):
        return PartialTranscript(text=text)

    return FinalTranscript(text=text)
