"""
Per-connection session orchestration.

The SessionController owns one client connection from connect to close.
It opens the Transcribe stream and runs three concurrent tasks:

- reader: client frames -> audio queue; control 'stop' ends the session
- sender: audio queue -> Transcribe audio sink
- relay: Transcribe events -> reconciler -> client

Lifecycle: STARTING -> ACTIVE -> DRAINING -> CLOSED. The first task to
finish ends ACTIVE. DRAINING closes the audio queue, lets Transcribe
deliver the remaining results, fires the session's cancellation signal,
archives the transcript and reports the outcome to the client.
"""

import asyncio
import time
from typing import AsyncIterator, Optional, Protocol, Union

import Levenshtein

from scribe_relay.exceptions import (
    ClientConnectionError,
    ClientDisconnected,
    ProtocolViolationError,
    StorageFailureError,
    TransportFailureError,
    UpstreamUnavailableError,
)
from scribe_relay.models.configuration import RecognitionConfig
from scribe_relay.models.session import Session, SessionState
from scribe_relay.models.transcription_results import TranscriptEvent
from scribe_relay.models.websocket_messages import (
    ErrorMessage,
    FinalMessage,
    PartialMessage,
    SavedMessage,
    ServerMessage,
)
from scribe_relay.services.audio_queue import AudioIngressQueue
from scribe_relay.services.transcript_reconciler import TranscriptReconciler
from scribe_relay.utils.error_codes import (
    ErrorCode,
    error_code_for_exception,
    get_error_message,
)
from scribe_relay.utils.structured_logger import LoggingContext, get_structured_logger
from scribe_relay.utils.websocket_parser import parse_client_message


class ClientConnection(Protocol):
    """Message-oriented, bidirectional client connection."""

    async def receive(self) -> Union[bytes, str]:
        """Return the next binary (bytes) or text (str) frame.

        Raises ClientDisconnected when the client closed the connection
        and ClientConnectionError on any other transport failure.
        """

    async def send_text(self, data: str) -> None:
        """Send one text frame. Raises ClientConnectionError on failure."""

    async def close(self, code: int = 1000) -> None:
        """Close the connection."""


# Reader outcomes
STOP_REQUESTED = 'stop'
CLIENT_DISCONNECTED = 'disconnected'
CLIENT_READ_ERROR = 'read_error'


class SessionController:
    """
    Orchestrates one relay session.

    Attributes:
        session: Session state owned by this controller
        queue: Audio ingress queue between reader and sender

    Examples:
        >>> controller = SessionController(connection, transcription, archiver, config)
        >>> session = await controller.run()
        >>> session.state
        <SessionState.CLOSED: 'closed'>
    """

    def __init__(
        self,
        connection: ClientConnection,
        transcription,
        archiver,
        config: RecognitionConfig,
        reconciler: Optional[TranscriptReconciler] = None,
        queue_capacity: int = 100,
        drain_timeout_seconds: float = 5.0,
        metrics=None,
        connection_id: Optional[str] = None,
        discrepancy_threshold: float = 20.0
    ):
        """
        Initialize session controller.

        Args:
            connection: Client connection
            transcription: Service with async start(config, session_id) -> (events, sink)
            archiver: TranscriptArchiver
            config: Recognition configuration for this connection
            reconciler: Optional TranscriptReconciler
            queue_capacity: Audio queue capacity in frames
            drain_timeout_seconds: Time allowed for remaining results after stop
            metrics: Optional MetricsEmitter
            connection_id: Client address for log correlation
            discrepancy_threshold: Percentage above which partial/final differences are logged
        """
        self.connection = connection
        self.transcription = transcription
        self.archiver = archiver
        self.reconciler = reconciler or TranscriptReconciler()
        self.drain_timeout_seconds = drain_timeout_seconds
        self.metrics = metrics
        self.discrepancy_threshold = discrepancy_threshold

        self.session = Session(config=config)
        self.queue = AudioIngressQueue(
            capacity=queue_capacity,
            session_id=self.session.session_id,
            metrics=metrics
        )
        self.log = get_structured_logger(
            'SessionController',
            session_id=self.session.session_id,
            connection_id=connection_id
        )

        self._write_lock = asyncio.Lock()
        self._sink = None
        self._reader: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None
        self._relay: Optional[asyncio.Task] = None
        self._observed_tasks = set()
        self._connection_broken = False
        self._upstream_failed = False
        self._last_partial = ''
        self.saved_key: Optional[str] = None

    async def run(self) -> Session:
        """
        Run the session to completion.

        Returns:
            The closed Session

        Raises:
            asyncio.CancelledError: If the session was cancelled from outside;
                the transcript is still archived first
        """
        self.log.info(
            'WebSocket connection established',
            operation='run',
            **self.session.config.to_dict()
        )

        try:
            events = await self._start()
        except asyncio.CancelledError:
            self._set_state(SessionState.CLOSED)
            await self._close_connection()
            raise

        if events is None:
            return self.session

        interrupted = False
        try:
            await self._run_active(events)
        except asyncio.CancelledError:
            self.log.warning('Session cancelled while active', operation='run')
            self.session.aborted = True
            self.session.cancel()
            interrupted = True

        if await self._drain():
            interrupted = True

        if interrupted:
            raise asyncio.CancelledError()
        return self.session

    async def _start(self) -> Optional[AsyncIterator[TranscriptEvent]]:
        """
        Open the Transcribe stream (STARTING).

        Returns:
            Event source, or None if the stream could not be opened
        """
        try:
            events, sink = await self.transcription.start(
                self.session.config,
                session_id=self.session.session_id
            )
        except UpstreamUnavailableError as e:
            self.log.error(
                'Failed to start transcription stream',
                operation='start',
                error=e
            )
            await self._report_error(ErrorCode.UPSTREAM_START_FAILED)
            self._set_state(SessionState.CLOSED)
            await self._close_connection()
            return None

        self._sink = sink
        self._set_state(SessionState.ACTIVE)
        return events

    async def _run_active(self, events: AsyncIterator[TranscriptEvent]) -> None:
        """Run the three session tasks until one of them finishes (ACTIVE)."""
        self._reader = asyncio.create_task(self._read_client(), name='reader')
        self._sender = asyncio.create_task(self._forward_audio(), name='sender')
        self._relay = asyncio.create_task(self._relay_events(events), name='relay')

        done, _ = await asyncio.wait(
            {self._reader, self._sender, self._relay},
            return_when=asyncio.FIRST_COMPLETED
        )

        for task in done:
            await self._observe_task(task)

    async def _drain(self) -> bool:
        """
        Wind the session down and archive the transcript (DRAINING -> CLOSED).

        Returns:
            True if the drain itself was interrupted by cancellation
        """
        self._set_state(SessionState.DRAINING)
        interrupted = False

        if self.session.aborted or self._upstream_failed:
            # No further sends to Transcribe
            self.session.cancel()
        self.queue.close()

        if not self.session.cancelled:
            pending = {t for t in (self._sender, self._relay) if t and not t.done()}
            if pending:
                try:
                    await asyncio.wait(pending, timeout=self.drain_timeout_seconds)
                except asyncio.CancelledError:
                    self.session.aborted = True
                    interrupted = True

        self.session.cancel()
        try:
            await self._cancel_tasks()
        except asyncio.CancelledError:
            interrupted = True

        try:
            # Archive is independent of session cancellation
            await asyncio.shield(self._archive())
        except asyncio.CancelledError:
            self.log.warning('Cancelled while archiving; write continues in background')
            interrupted = True

        self._set_state(SessionState.CLOSED)
        await self._close_connection()
        try:
            await self._emit_session_metrics()
        except asyncio.CancelledError:
            interrupted = True
        return interrupted

    async def _cancel_tasks(self) -> None:
        """Cancel session tasks still running and observe their results."""
        tasks = [t for t in (self._reader, self._sender, self._relay) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)
        for task in tasks:
            await self._observe_task(task)

    async def _observe_task(self, task: asyncio.Task) -> None:
        """Report the failure of a finished task, once."""
        if task.cancelled() or task in self._observed_tasks:
            return
        self._observed_tasks.add(task)

        error = task.exception()
        if error is None:
            if task is self._reader:
                self.log.info(
                    f'Client reader finished: {task.result()}',
                    operation='read_client'
                )
            elif task is self._relay:
                self.log.info('Transcribe stream closed', operation='relay_events')
            return

        if isinstance(error, UpstreamUnavailableError):
            already_failed = self._upstream_failed
            self._upstream_failed = True
            self.log.error('Transcription stream failed', operation=task.get_name(), error=error)
            if already_failed:
                # Send and receive halves of one stream count as one failure
                return

            if self.metrics:
                self.metrics.emit_upstream_error(
                    self.session.session_id,
                    error_code_for_exception(error).value
                )
            if not self.session.aborted:
                await self._report_error(error_code_for_exception(error))
            return

        self.log.error('Session task failed', operation=task.get_name(), error=error)
        await self._report_error(ErrorCode.INTERNAL_SERVER_ERROR)

    async def _read_client(self) -> str:
        """
        Read client frames until stop, disconnect or read failure.

        Returns:
            STOP_REQUESTED, CLIENT_DISCONNECTED or CLIENT_READ_ERROR
        """
        while True:
            try:
                frame = await self.connection.receive()
            except ClientDisconnected as e:
                self._connection_broken = True
                self.log.info('Client disconnected', operation='read_client', code=e.code)
                return CLIENT_DISCONNECTED
            except ClientConnectionError as e:
                self._connection_broken = True
                self.log.warning('WebSocket read error', operation='read_client', error=str(e))
                return CLIENT_READ_ERROR

            if isinstance(frame, (bytes, bytearray)):
                # An empty frame would end the Transcribe stream
                if frame:
                    self.queue.push(bytes(frame))
                continue

            self.log.log_websocket_message('inbound', 'control', len(frame))
            try:
                message = parse_client_message(frame)
            except ProtocolViolationError as e:
                self.log.warning(
                    'Ignoring malformed control message',
                    operation='read_client',
                    error=str(e)
                )
                continue

            if message.is_stop:
                self.log.info('Received stop command', operation='read_client')
                return STOP_REQUESTED

    async def _forward_audio(self) -> None:
        """
        Send queued audio to Transcribe until the queue is closed.

        Sends the end-of-stream marker once the queue is drained, unless
        the session was cancelled first. Cancellation includes the
        Transcribe stream closing on its own; nothing is sent after that.
        """
        while True:
            frame = await self.queue.pop()
            if frame is None:
                break
            if self.session.cancelled:
                return
            try:
                await self._sink.send(frame)
            except TransportFailureError as e:
                if not self.session.cancelled:
                    raise
                # Stream closed while this frame was in flight
                self.log.debug(
                    'Dropped frame after stream closed',
                    operation='sender',
                    error=str(e)
                )
                return

        if not self.session.cancelled:
            await self._sink.send(b'')

    async def _relay_events(self, events: AsyncIterator[TranscriptEvent]) -> None:
        """
        Forward Transcribe events to the client in arrival order.

        When the event stream ends, for any reason, the session's
        cancellation signal is set so the sender stops writing to it.
        """
        try:
            async for event in events:
                if self.session.cancelled:
                    break

                if event.is_final:
                    await self._handle_final(event.text)
                else:
                    self._last_partial = event.text
                    await self._send(PartialMessage(text=event.text))
        finally:
            self.session.cancel()
            aclose = getattr(events, 'aclose', None)
            if aclose is not None:
                await aclose()

    async def _handle_final(self, text: str) -> None:
        """Reconcile a final result and forward the accepted segment."""
        self.log.log_transcribe_event('final', text_length=len(text))

        decision = await self.reconciler.apply(self.session.transcript, text)

        if self._last_partial:
            self._check_discrepancy(self._last_partial, text)
            self._last_partial = ''

        if not decision.accepted:
            self.log.debug(
                'Discarded final result',
                operation='reconcile',
                outcome=decision.outcome.value
            )
            if self.metrics:
                self.metrics.emit_segment_discarded(
                    self.session.session_id, decision.outcome.value
                )
            return

        self.log.info(
            'Added transcript segment',
            operation='reconcile',
            outcome=decision.outcome.value,
            total_segments=len(self.session.transcript)
        )
        if self.metrics:
            self.metrics.emit_segment_accepted(self.session.session_id, decision.outcome.value)

        await self._send(FinalMessage(text=decision.text))

    def _check_discrepancy(self, partial_text: str, final_text: str) -> None:
        """
        Log how far the last partial was from the final result.

        The discrepancy is (edit_distance / max_length) * 100.
        """
        max_length = max(len(partial_text), len(final_text))
        if max_length == 0:
            return

        discrepancy_pct = Levenshtein.distance(partial_text, final_text) / max_length * 100
        if discrepancy_pct > self.discrepancy_threshold:
            self.log.debug(
                'Significant partial/final discrepancy',
                operation='reconcile',
                discrepancy_percentage=round(discrepancy_pct, 1),
                threshold=self.discrepancy_threshold
            )

    async def _archive(self) -> None:
        """Archive the transcript if any segment was accepted."""
        segments = await self.session.transcript.snapshot()
        if not segments:
            self.log.info('No transcription to save', operation='archive')
            return

        full_text = ' '.join(segments)
        self.log.info(
            'Saving transcription',
            operation='archive',
            segment_count=len(segments),
            text_length=len(full_text)
        )

        config = self.session.config
        metadata = {
            'session-id': self.session.session_id,
            'language': config.language_code,
            'specialty': config.specialty,
            'transcription-type': config.transcription_type,
        }

        start_time = time.time()
        try:
            with LoggingContext(self.log, 'archive', segment_count=len(segments)):
                key = await self.archiver.save(
                    full_text,
                    suffix=self.session.session_id[:8],
                    metadata=metadata
                )
        except StorageFailureError:
            if self.metrics:
                self.metrics.emit_archive_result(
                    self.session.session_id, False, (time.time() - start_time) * 1000
                )
            await self._report_error(ErrorCode.STORAGE_WRITE_FAILED)
            return

        if self.metrics:
            self.metrics.emit_archive_result(
                self.session.session_id, True, (time.time() - start_time) * 1000
            )

        if key:
            self.saved_key = key
            await self._send(SavedMessage(key=key))

    async def _send(self, message: ServerMessage) -> bool:
        """
        Send one message to the client, serialized with every other write.

        Nothing is sent once the connection broke or the session was
        cancelled from outside.

        Returns:
            True if the message was written
        """
        if self._connection_broken or self.session.aborted:
            return False

        payload = message.to_json()
        async with self._write_lock:
            try:
                await self.connection.send_text(payload)
            except ClientConnectionError as e:
                self._connection_broken = True
                self.log.warning(
                    'Error sending message',
                    operation='send',
                    message_type=message.message_type,
                    error=str(e)
                )
                return False

        self.log.log_websocket_message('outbound', message.message_type, len(payload))
        return True

    async def _report_error(self, error_code: ErrorCode) -> None:
        """Send an error message for a fatal or storage condition."""
        await self._send(ErrorMessage(text=get_error_message(error_code)))

    async def _close_connection(self) -> None:
        try:
            await self.connection.close()
        except ClientConnectionError as e:
            self.log.debug('Connection already closed', operation='close', error=str(e))

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self.session.transition(new_state)
        self.log.log_state_change('sessionState', old_state.value, new_state.value)

    async def _emit_session_metrics(self) -> None:
        stats = self.queue.get_stats()
        self.log.info(
            'Session closed',
            operation='close',
            duration_seconds=round(self.session.duration_seconds, 1),
            segments=len(self.session.transcript),
            frames_received=stats.total_received,
            frames_dropped=stats.total_dropped,
            saved_key=self.saved_key
        )

        if not self.metrics:
            return

        self.metrics.emit_session_completed(
            self.session.session_id,
            self.session.duration_seconds,
            len(self.session.transcript)
        )
        await self.metrics.flush_async()
