"""
Integration tests for SessionController.

These tests run complete sessions against a scripted client connection,
a scripted transcription stream and a recording archiver.
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from scribe_relay.exceptions import UpstreamUnavailableError
from scribe_relay.models import (
    FinalTranscript,
    PartialTranscript,
    RecognitionConfig,
    SessionState
)
from scribe_relay.services.session_controller import SessionController

STOP = json.dumps({'type': 'control', 'action': 'stop'})
FRAME = b'\x00\x01' * 160


async def run_session(controller, timeout=5.0):
    return await asyncio.wait_for(controller.run(), timeout=timeout)


async def wait_until(predicate, timeout=2.0):
    """Poll until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError('condition not reached in time')
        await asyncio.sleep(0.01)


class TestSessionLifecycle:
    """Test suite for complete sessions."""

    @pytest.mark.asyncio
    async def test_dictation_end_to_end(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test partials and final are relayed, then the transcript is saved."""
        connection = connection_factory([FRAME] * 5 + [STOP])
        transcription = transcription_factory(events=[
            PartialTranscript(text='hel'),
            PartialTranscript(text='hello'),
            FinalTranscript(text='hello there'),
        ])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        assert connection.sent_types == ['partial', 'partial', 'final', 'saved']
        assert connection.messages_of_type('partial')[0]['text'] == 'hel'
        assert connection.messages_of_type('final') == [{'type': 'final', 'text': 'hello there'}]
        assert connection.messages_of_type('saved')[0]['key'] == fake_archiver.key
        assert connection.closed is True

        assert fake_archiver.saved[0]['text'] == 'hello there'
        assert transcription.input_stream.chunks == [FRAME] * 5
        assert transcription.input_stream.end_stream_calls == 1
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_finals_after_stop_are_delivered_before_saved(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test results emitted after end-of-stream are still relayed and archived."""
        connection = connection_factory([FRAME, FRAME, STOP])
        transcription = transcription_factory(
            events_after_end=[FinalTranscript(text='patient reports chest pain')]
        )
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        await run_session(controller)

        assert connection.sent_types == ['final', 'saved']
        assert fake_archiver.saved[0]['text'] == 'patient reports chest pain'

    @pytest.mark.asyncio
    async def test_overlapping_finals_are_reconciled(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test repeated and extended finals reach the client once."""
        connection = connection_factory([FRAME, STOP])
        transcription = transcription_factory(events=[
            FinalTranscript(text='hello there'),
            FinalTranscript(text='hello there'),
            FinalTranscript(text='hello there how are you'),
            FinalTranscript(text='how are you'),
        ])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        finals = [m['text'] for m in connection.messages_of_type('final')]
        assert finals == ['hello there', 'how are you']
        assert fake_archiver.saved[0]['text'] == 'hello there how are you'
        assert session.transcript.segments == ['hello there', 'how are you']

    @pytest.mark.asyncio
    async def test_no_segments_skips_archive(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test a session without accepted finals does not contact storage."""
        connection = connection_factory([FRAME, STOP])
        transcription = transcription_factory(events=[PartialTranscript(text='uh')])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        await run_session(controller)

        assert fake_archiver.saved == []
        assert connection.sent_types == ['partial']
        assert connection.closed is True

    @pytest.mark.asyncio
    async def test_archive_metadata_and_suffix(
        self, connection_factory, transcription_factory, fake_archiver
    ):
        """Test the archive call carries session-scoped suffix and metadata."""
        config = RecognitionConfig(specialty='CARDIOLOGY', transcription_type='CONVERSATION')
        connection = connection_factory([FRAME, STOP])
        transcription = transcription_factory(events=[FinalTranscript(text='murmur noted')])
        controller = SessionController(connection, transcription, fake_archiver, config)

        session = await run_session(controller)

        saved = fake_archiver.saved[0]
        assert saved['suffix'] == session.session_id[:8]
        assert saved['metadata']['specialty'] == 'CARDIOLOGY'
        assert saved['metadata']['transcription-type'] == 'CONVERSATION'
        assert saved['metadata']['session-id'] == session.session_id


class TestSessionFailures:
    """Test suite for failure handling."""

    @pytest.mark.asyncio
    async def test_start_failure_sends_one_error_and_closes(
        self, connection_factory, unavailable_transcription, fake_archiver, recognition_config
    ):
        """Test an unavailable service ends the session from STARTING."""
        connection = connection_factory([FRAME, STOP])
        controller = SessionController(
            connection, unavailable_transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        assert connection.sent == [{'type': 'error', 'text': 'Failed to start transcription'}]
        assert connection.closed is True
        assert fake_archiver.saved == []
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_upstream_failure_mid_stream(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test a stream failure sends one error and still archives."""
        connection = connection_factory([FRAME])
        transcription = transcription_factory(
            events=[FinalTranscript(text='patient stable')],
            error=UpstreamUnavailableError('stream reset')
        )
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        assert connection.sent_types == ['final', 'error', 'saved']
        assert connection.messages_of_type('error')[0]['text'] == 'Transcription stream failed'
        assert fake_archiver.saved[0]['text'] == 'patient stable'
        assert transcription.input_stream.end_stream_calls == 0
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_send_and_receive_failure_sends_one_error(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test both halves of the stream failing is reported to the client once."""
        metrics = Mock()
        metrics.flush_async = AsyncMock()
        connection = connection_factory([FRAME, FRAME])
        transcription = transcription_factory(
            error=UpstreamUnavailableError('stream reset'),
            send_error=ConnectionResetError('connection reset by peer')
        )
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config, metrics=metrics
        )

        session = await run_session(controller)

        assert connection.sent_types == ['error']
        assert connection.sent[0]['text'] in (
            'Failed to send audio to transcription service',
            'Transcription stream failed',
        )
        metrics.emit_upstream_error.assert_called_once()
        assert transcription.input_stream.end_stream_calls == 0
        assert fake_archiver.saved == []
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_service_closing_stream_ends_session(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test the service ending the stream on its own drains without an error."""
        connection = connection_factory([FRAME, FRAME])
        transcription = transcription_factory(
            events=[FinalTranscript(text='patient is stable')],
            close_after=0.05
        )
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        assert connection.sent_types == ['final', 'saved']
        assert transcription.input_stream.closed is True
        assert transcription.input_stream.end_stream_calls == 0
        assert fake_archiver.saved[0]['text'] == 'patient is stable'
        assert connection.closed is True
        assert session.cancelled is True
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_storage_failure_reports_error(
        self, connection_factory, transcription_factory, failing_archiver, recognition_config
    ):
        """Test a failed archive write is reported instead of saved."""
        connection = connection_factory([FRAME, STOP])
        transcription = transcription_factory(events=[FinalTranscript(text='hello there')])
        controller = SessionController(
            connection, transcription, failing_archiver, recognition_config
        )

        await run_session(controller)

        assert connection.sent_types == ['final', 'error']
        assert connection.sent[-1]['text'] == 'Failed to save transcription'
        assert len(failing_archiver.saved) == 1

    @pytest.mark.asyncio
    async def test_client_disconnect_still_archives(
        self, connection_factory, transcription_factory, fake_archiver,
        recognition_config, disconnect_frame
    ):
        """Test a dropped connection gets no saved message but the transcript persists."""
        connection = connection_factory([FRAME, FRAME, disconnect_frame])
        transcription = transcription_factory(events=[FinalTranscript(text='hello there')])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        await run_session(controller)

        assert 'saved' not in connection.sent_types
        assert fake_archiver.saved[0]['text'] == 'hello there'
        assert transcription.input_stream.end_stream_calls == 1

    @pytest.mark.asyncio
    async def test_malformed_control_messages_are_ignored(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test bad text frames do not end the session."""
        connection = connection_factory([
            FRAME,
            'not json',
            json.dumps({'type': 'control', 'action': 'pause'}),
            b'',
            FRAME,
            STOP,
        ])
        transcription = transcription_factory()
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        session = await run_session(controller)

        assert connection.sent == []
        assert transcription.input_stream.chunks == [FRAME, FRAME]
        assert transcription.input_stream.end_stream_calls == 1
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_queue_overflow_drops_frames(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test a slow sender makes the reader drop frames instead of blocking."""
        connection = connection_factory([FRAME] * 10 + [STOP])
        transcription = transcription_factory()
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config, queue_capacity=2
        )

        await run_session(controller)

        stats = controller.queue.get_stats()
        assert stats.total_received == 10
        assert stats.total_dropped > 0
        assert stats.total_dropped + len(transcription.input_stream.chunks) == 10


class TestSessionCancellation:
    """Test suite for external cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_archives_without_further_sends(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test cancelling run() still persists accepted segments."""
        connection = connection_factory([FRAME])
        transcription = transcription_factory(events=[FinalTranscript(text='hello there')])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config
        )

        task = asyncio.create_task(controller.run())
        await wait_until(lambda: connection.sent_types == ['final'])

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert fake_archiver.saved[0]['text'] == 'hello there'
        assert connection.sent_types == ['final']
        assert connection.closed is True
        assert transcription.input_stream.end_stream_calls == 0
        assert controller.session.aborted is True
        assert controller.session.cancelled is True
        assert controller.session.state == SessionState.CLOSED


class TestSessionMetrics:
    """Test suite for metrics emission."""

    @pytest.mark.asyncio
    async def test_metrics_emitted_when_configured(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test segment, archive and session metrics are emitted and flushed."""
        metrics = Mock()
        metrics.flush_async = AsyncMock()
        connection = connection_factory([FRAME, STOP])
        transcription = transcription_factory(events=[
            FinalTranscript(text='hello there'),
            FinalTranscript(text='hello there'),
        ])
        controller = SessionController(
            connection, transcription, fake_archiver, recognition_config, metrics=metrics
        )

        session = await run_session(controller)

        metrics.emit_segment_accepted.assert_called_once_with(session.session_id, 'new')
        metrics.emit_segment_discarded.assert_called_once_with(
            session.session_id, 'exact_duplicate'
        )
        assert metrics.emit_archive_result.call_args[0][1] is True
        metrics.emit_session_completed.assert_called_once()
        metrics.flush_async.assert_awaited_once()
        metrics.flush.assert_not_called()


class TestConcurrentReconcile:
    """Test suite for concurrent finals on one session transcript."""

    @pytest.mark.asyncio
    async def test_concurrent_apply_is_serialized(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test two applies of the same final accept it exactly once."""
        controller = SessionController(
            connection_factory(), transcription_factory(), fake_archiver, recognition_config
        )
        transcript = controller.session.transcript

        async with transcript.lock:
            first = asyncio.create_task(controller.reconciler.apply(transcript, 'hello there'))
            second = asyncio.create_task(controller.reconciler.apply(transcript, 'hello there'))
            await asyncio.sleep(0.01)
            assert not first.done()
            assert not second.done()

        decisions = await asyncio.gather(first, second)

        assert sorted(d.accepted for d in decisions) == [False, True]
        assert transcript.segments == ['hello there']

    @pytest.mark.asyncio
    async def test_concurrent_extension_and_snapshot(
        self, connection_factory, transcription_factory, fake_archiver, recognition_config
    ):
        """Test an extension racing a snapshot never exposes a partial update."""
        controller = SessionController(
            connection_factory(), transcription_factory(), fake_archiver, recognition_config
        )
        transcript = controller.session.transcript
        await controller.reconciler.apply(transcript, 'hello there')

        results = await asyncio.gather(
            controller.reconciler.apply(transcript, 'hello there how are you'),
            transcript.snapshot(),
            controller.reconciler.apply(transcript, 'hello there how are you'),
        )

        assert results[0].text == 'how are you'
        assert results[1] in (['hello there'], ['hello there', 'how are you'])
        assert results[2].accepted is False
        assert transcript.segments == ['hello there', 'how are you']
