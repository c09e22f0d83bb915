"""
AWS Transcribe Streaming client management.

This module opens full-duplex transcription streams and exposes them as
two halves: an audio sink that accepts encoded PCM frames, and a lazy
event source yielding partial/final transcript events. Failures are not
retried here; mid-stream reconnection would need audio that has already
been consumed.
"""

import logging
import time
from typing import AsyncIterator, Callable, Optional, Tuple

from amazon_transcribe.client import TranscribeStreamingClient

from scribe_relay.exceptions import TransportFailureError, UpstreamUnavailableError
from scribe_relay.models.configuration import RecognitionConfig
from scribe_relay.models.transcription_results import TranscriptEvent
from scribe_relay.services.transcript_stream_handler import parse_transcript_event

logger = logging.getLogger(__name__)


class TranscribeAudioSink:
    """
    Send half of a transcription stream.

    Non-empty frames are forwarded as audio events. An empty frame is the
    end-of-stream marker: it is forwarded to the service exactly once, and
    every send after it raises TransportFailureError.

    Examples:
        >>> await sink.send(frame)
        >>> await sink.send(b'')   # end of stream
        >>> sink.ended
        True
    """

    def __init__(self, input_stream, session_id: str = ''):
        """
        Initialize audio sink.

        Args:
            input_stream: SDK input stream (send_audio_event / end_stream)
            session_id: Session ID for logging
        """
        self._input_stream = input_stream
        self.session_id = session_id
        self._ended = False
        self.frames_sent = 0
        self.bytes_sent = 0

    @property
    def ended(self) -> bool:
        return self._ended

    async def send(self, frame: bytes) -> None:
        """
        Send one audio frame, or the end-of-stream marker if empty.

        Args:
            frame: Encoded PCM audio; b'' ends the stream

        Raises:
            TransportFailureError: If the stream has ended or the send fails
        """
        if self._ended:
            raise TransportFailureError(
                f"Audio stream already ended for session {self.session_id}"
            )

        if not frame:
            await self.end_stream()
            return

        try:
            await self._input_stream.send_audio_event(audio_chunk=frame)
        except Exception as e:
            raise TransportFailureError(
                f"Failed to send audio to Transcribe: {e}",
                original_error=e
            ) from e

        self.frames_sent += 1
        self.bytes_sent += len(frame)

    async def end_stream(self) -> None:
        """
        Signal end of audio to the service. Only the first call sends.

        Raises:
            TransportFailureError: If the end-of-stream send fails
        """
        if self._ended:
            return

        self._ended = True
        try:
            await self._input_stream.end_stream()
        except Exception as e:
            raise TransportFailureError(
                f"Failed to end Transcribe audio stream: {e}",
                original_error=e
            ) from e

        logger.info(
            f"Ended audio stream for session {self.session_id}: "
            f"frames_sent={self.frames_sent}, bytes_sent={self.bytes_sent}"
        )


async def iterate_transcript_events(
    output_stream,
    session_id: str = ''
) -> AsyncIterator[TranscriptEvent]:
    """
    Yield transcript events from the SDK output stream.

    The iterator is finite: it ends when the service closes the stream.

    Args:
        output_stream: SDK TranscriptResultStream
        session_id: Session ID for logging

    Yields:
        PartialTranscript / FinalTranscript in service order

    Raises:
        UpstreamUnavailableError: If the service reports a stream error
    """
    try:
        async for event in output_stream:
            for transcript_event in parse_transcript_event(event):
                yield transcript_event
    except UpstreamUnavailableError:
        raise
    except Exception as e:
        raise UpstreamUnavailableError(
            f"Transcribe stream failed for session {session_id}: {e}",
            original_error=e
        ) from e

    logger.info(f"Transcribe output stream closed for session {session_id}")


class TranscribeStreamingService:
    """
    Factory of transcription streams.

    Examples:
        >>> service = TranscribeStreamingService(region='us-east-1')
        >>> events, sink = await service.start(RecognitionConfig())
        >>> await sink.send(frame)
        >>> async for event in events:
        ...     print(event.text)
    """

    def __init__(
        self,
        region: str = 'us-east-1',
        client_factory: Optional[Callable[..., TranscribeStreamingClient]] = None
    ):
        """
        Initialize streaming service.

        Args:
            region: Default AWS region
            client_factory: Callable creating SDK clients (region=...)
        """
        self.region = region
        self.client_factory = client_factory or TranscribeStreamingClient

    def create_client(self, region: Optional[str] = None) -> TranscribeStreamingClient:
        """Create AWS Transcribe Streaming client for a region."""
        region = region or self.region
        logger.debug(f"Creating Transcribe client for region {region}")
        return self.client_factory(region=region)

    def get_stream_request(self, config: RecognitionConfig) -> dict:
        """
        Get SDK stream request parameters as dictionary.

        Specialty and transcription type are session metadata: the
        streaming SDK only exposes the general transcription call.

        Args:
            config: Recognition configuration

        Returns:
            Keyword arguments for start_stream_transcription()
        """
        request = {
            'language_code': config.language_code,
            'media_sample_rate_hz': config.media_sample_rate_hz,
            'media_encoding': config.media_encoding,
        }
        if config.number_of_channels > 1:
            request['enable_channel_identification'] = True
            request['number_of_channels'] = config.number_of_channels
        return request

    async def start(
        self,
        config: RecognitionConfig,
        session_id: str = ''
    ) -> Tuple[AsyncIterator[TranscriptEvent], TranscribeAudioSink]:
        """
        Open a transcription stream.

        Args:
            config: Recognition configuration
            session_id: Session ID for logging

        Returns:
            Tuple of (event source, audio sink)

        Raises:
            UpstreamUnavailableError: If the stream cannot be started
        """
        request = self.get_stream_request(config)
        logger.info(
            f"Starting transcription stream for session {session_id}: "
            f"language={config.language_code}, specialty={config.specialty}, "
            f"type={config.transcription_type}, "
            f"sample_rate={config.media_sample_rate_hz}Hz, "
            f"channels={config.number_of_channels}"
        )

        start_time = time.time()
        try:
            client = self.create_client(config.region)
            stream = await client.start_stream_transcription(**request)
        except Exception as e:
            raise UpstreamUnavailableError(
                f"Failed to start Transcribe stream: {e}",
                original_error=e
            ) from e

        logger.info(
            f"Transcription stream started for session {session_id} "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )

        events = iterate_transcript_events(stream.output_stream, session_id)
        sink = TranscribeAudioSink(stream.input_stream, session_id)
        return events, sink
