"""
Shared pytest fixtures for scribe-relay tests.
"""

import asyncio
import json
import os

import pytest

from scribe_relay.exceptions import (
    ClientDisconnected,
    StorageFailureError,
    UpstreamUnavailableError,
)
from scribe_relay.models import RecognitionConfig
from scribe_relay.services.transcribe_client import TranscribeAudioSink


DISCONNECT = object()


class FakeConnection:
    """
    Scripted client connection.

    Incoming frames are queued with feed(); receive() blocks until one is
    available. Feeding DISCONNECT makes receive() raise ClientDisconnected.
    """

    def __init__(self, frames=None):
        self._incoming = asyncio.Queue()
        self.sent = []
        self.closed = False
        self.close_code = None
        for frame in frames or []:
            self.feed(frame)

    def feed(self, frame) -> None:
        self._incoming.put_nowait(frame)

    async def receive(self):
        frame = await self._incoming.get()
        if frame is DISCONNECT:
            raise ClientDisconnected(code=1001, reason='going away')
        return frame

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    def messages_of_type(self, message_type: str):
        return [m for m in self.sent if m['type'] == message_type]

    @property
    def sent_types(self):
        return [m['type'] for m in self.sent]


class FakeInputStream:
    """
    Records what the audio sink sends to the service.

    `send_error` makes every audio send fail. Once `closed` is set, as it
    is when the service ends the stream on its own, every send and the
    end-of-stream call fail with ConnectionResetError.
    """

    def __init__(self, send_error=None):
        self.chunks = []
        self.end_stream_calls = 0
        self.ended = asyncio.Event()
        self.send_error = send_error
        self.send_failed = asyncio.Event()
        self.closed = False

    async def send_audio_event(self, audio_chunk: bytes) -> None:
        if self.closed:
            raise ConnectionResetError('stream closed by service')
        if self.send_error is not None:
            self.send_failed.set()
            raise self.send_error
        self.chunks.append(audio_chunk)

    async def end_stream(self) -> None:
        if self.closed:
            raise ConnectionResetError('stream closed by service')
        self.end_stream_calls += 1
        self.ended.set()


class FakeTranscription:
    """
    Scripted transcription service.

    Events in `events` are yielded as soon as the stream opens. The
    stream then waits for the end-of-stream marker and yields
    `events_after_end` before closing, the way the service delivers the
    last finals after the client stops sending. `error` is raised after
    the initial events instead of waiting for the end of stream; with a
    `send_error` it is raised once an audio send has failed. With
    `close_after` the service ends the stream on its own after that many
    seconds.
    """

    def __init__(self, events=None, events_after_end=None, error=None, start_error=None,
                 send_error=None, close_after=None):
        self.events = list(events or [])
        self.events_after_end = list(events_after_end or [])
        self.error = error
        self.start_error = start_error
        self.close_after = close_after
        self.input_stream = FakeInputStream(send_error=send_error)
        self.start_calls = []

    async def start(self, config, session_id=''):
        self.start_calls.append((config, session_id))
        if self.start_error is not None:
            raise self.start_error
        return self._iterate(), TranscribeAudioSink(self.input_stream, session_id)

    async def _iterate(self):
        for event in self.events:
            yield event
        if self.error is not None:
            if self.input_stream.send_error is not None:
                await self.input_stream.send_failed.wait()
            raise self.error
        if self.close_after is not None:
            await asyncio.sleep(self.close_after)
            self.input_stream.closed = True
            return
        await self.input_stream.ended.wait()
        for event in self.events_after_end:
            yield event


class FakeArchiver:
    """Records save() calls; optionally fails."""

    def __init__(self, key='medical-transcriptions/transcription_2024-05-01_10-15-00_test.txt',
                 error=None):
        self.key = key
        self.error = error
        self.saved = []

    async def save(self, full_text, suffix='', metadata=None):
        self.saved.append({'text': full_text, 'suffix': suffix, 'metadata': metadata})
        if self.error is not None:
            raise self.error
        if not full_text:
            return None
        return self.key


@pytest.fixture
def aws_credentials():
    """Mocked AWS credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'


@pytest.fixture
def recognition_config():
    """Fixture providing the default recognition configuration."""
    return RecognitionConfig()


@pytest.fixture
def fake_archiver():
    return FakeArchiver()


@pytest.fixture
def failing_archiver():
    return FakeArchiver(error=StorageFailureError('Access Denied'))


@pytest.fixture
def unavailable_transcription():
    return FakeTranscription(
        start_error=UpstreamUnavailableError('Failed to start Transcribe stream')
    )


@pytest.fixture
def connection_factory():
    """Fixture providing the scripted connection class."""
    return FakeConnection


@pytest.fixture
def transcription_factory():
    """Fixture providing the scripted transcription service class."""
    return FakeTranscription


@pytest.fixture
def disconnect_frame():
    """Frame that makes FakeConnection.receive() raise ClientDisconnected."""
    return DISCONNECT
