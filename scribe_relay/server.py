"""
HTTP/WebSocket process boundary for the dictation relay.

Endpoints:
- GET /health: liveness probe, plain text "OK"
- WS /ws/medical/direct?specialty=&type=: one dictation session per
  connection; binary frames carry PCM audio, text frames carry control
  messages, the server answers with partial/final/saved/error messages
"""

import logging
from typing import Optional, Union

import uvicorn
from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from scribe_relay import __version__
from scribe_relay.config.settings import ServiceSettings
from scribe_relay.exceptions import ClientConnectionError, ClientDisconnected
from scribe_relay.models.websocket_messages import ErrorMessage
from scribe_relay.services.session_controller import SessionController
from scribe_relay.services.transcribe_client import TranscribeStreamingService
from scribe_relay.services.transcript_archiver import TranscriptArchiver
from scribe_relay.utils.error_codes import ErrorCode, get_error_message
from scribe_relay.utils.metrics_emitter import MetricsEmitter
from scribe_relay.utils.structured_logger import configure_logging

logger = logging.getLogger(__name__)


class FastAPIClientConnection:
    """
    Adapts a Starlette WebSocket to the session's client connection.

    Transport exceptions are translated to ClientConnectionError so the
    session controller does not depend on the web framework.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    async def receive(self) -> Union[bytes, str]:
        """
        Return the next binary or text frame.

        Raises:
            ClientDisconnected: On a websocket.disconnect message
            ClientConnectionError: On any other receive failure
        """
        try:
            message = await self.websocket.receive()
        except WebSocketDisconnect as e:
            raise ClientDisconnected(code=e.code, reason=e.reason or '') from e
        except RuntimeError as e:
            raise ClientConnectionError(f"WebSocket receive failed: {e}") from e

        if message.get('type') == 'websocket.disconnect':
            raise ClientDisconnected(
                code=message.get('code', 1000),
                reason=message.get('reason') or ''
            )

        if message.get('bytes') is not None:
            return message['bytes']
        if message.get('text') is not None:
            return message['text']

        raise ClientConnectionError(f"Unexpected WebSocket message: {message.get('type')}")

    async def send_text(self, data: str) -> None:
        try:
            await self.websocket.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as e:
            raise ClientConnectionError(f"WebSocket send failed: {e}") from e

    async def close(self, code: int = 1000) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.websocket.close(code=code)
        except RuntimeError as e:
            # Raised when the client already closed its side
            raise ClientConnectionError(f"WebSocket close failed: {e}") from e


def create_app(
    settings: Optional[ServiceSettings] = None,
    transcription: Optional[TranscribeStreamingService] = None,
    archiver: Optional[TranscriptArchiver] = None,
    metrics: Optional[MetricsEmitter] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Service settings; loaded from the environment if omitted
        transcription: Streaming service; created from settings if omitted
        archiver: Transcript archiver; created from settings if omitted
        metrics: Metrics emitter; created when METRICS_ENABLED is set

    Returns:
        Configured FastAPI app
    """
    settings = settings or ServiceSettings.from_environment()

    if transcription is None:
        transcription = TranscribeStreamingService(region=settings.transcribe_region)

    if archiver is None:
        archiver = TranscriptArchiver(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            timeout_seconds=settings.archive_timeout_seconds
        )

    if metrics is None and settings.metrics_enabled:
        metrics = MetricsEmitter(
            namespace=settings.metrics_namespace,
            region=settings.transcribe_region
        )

    app = FastAPI(title='scribe-relay', version=__version__)
    app.state.settings = settings
    app.state.transcription = transcription
    app.state.archiver = archiver
    app.state.metrics = metrics

    @app.get('/health', response_class=PlainTextResponse)
    async def health_check() -> str:
        """Liveness probe (no auth required)."""
        return 'OK'

    @app.websocket('/ws/medical/direct')
    async def medical_dictation(
        websocket: WebSocket,
        specialty: Optional[str] = None,
        transcription_type: Optional[str] = Query(None, alias='type')
    ) -> None:
        await websocket.accept()
        connection = FastAPIClientConnection(websocket)
        client = f'{websocket.client.host}:{websocket.client.port}' if websocket.client else '-'

        state = websocket.app.state
        try:
            config = state.settings.recognition_config().with_overrides(
                specialty=specialty or None,
                transcription_type=transcription_type or None
            )
        except ValueError as e:
            logger.warning(f"Rejected connection from {client}: {e}")
            try:
                await connection.send_text(
                    ErrorMessage(
                        text=get_error_message(ErrorCode.VALIDATION_INVALID_PARAMETER)
                    ).to_json()
                )
                await connection.close(code=1008)
            except ClientConnectionError as send_error:
                logger.debug(f"Could not notify rejected client {client}: {send_error}")
            return

        controller = SessionController(
            connection=connection,
            transcription=state.transcription,
            archiver=state.archiver,
            config=config,
            queue_capacity=state.settings.audio_queue_capacity,
            drain_timeout_seconds=state.settings.drain_timeout_seconds,
            metrics=state.metrics,
            connection_id=client
        )
        await controller.run()

    return app


def main() -> None:
    """Console entry point: load settings and serve on PORT."""
    settings = ServiceSettings.from_environment()
    configure_logging(settings.log_level)
    logger.info(f"Starting scribe-relay {__version__} on port {settings.port}")

    uvicorn.run(
        create_app(settings),
        host='0.0.0.0',
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == '__main__':
    main()
