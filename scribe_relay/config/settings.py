"""
Service settings loaded from environment variables.

Settings are read once at process start. A local .env file is loaded
first when present, so development setups do not need exported
variables; real environment variables always win.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from scribe_relay.exceptions import ConfigurationError
from scribe_relay.models.configuration import RecognitionConfig

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE_HZ = 16000


def get_env(key: str, default: str = '') -> str:
    """Return the environment value for key, or default when unset or empty."""
    value = os.getenv(key)
    if value:
        return value
    return default


@dataclass(frozen=True)
class ServiceSettings:
    """
    Process-wide settings for the relay.

    Attributes:
        transcribe_region: AWS region of the Transcribe streaming endpoint
        s3_region: AWS region of the archive bucket
        s3_bucket: Archive bucket name
        s3_prefix: Key prefix for archived transcripts
        language_code: Default recognition language
        specialty: Default medical specialty
        transcription_type: Default transcription type
        sample_rate_hz: PCM sample rate sent by the client
        audio_queue_capacity: Frames buffered between reader and sender
        archive_timeout_seconds: Upper bound of one archive write
        drain_timeout_seconds: Time allowed for final results after stop
        metrics_enabled: Emit CloudWatch metrics
        metrics_namespace: CloudWatch namespace
        port: HTTP listener port
        log_level: Root log level
    """

    transcribe_region: str = 'us-east-1'
    s3_region: str = 'us-east-1'
    s3_bucket: str = ''
    s3_prefix: str = 'medical-transcriptions'
    language_code: str = 'en-US'
    specialty: str = 'PRIMARYCARE'
    transcription_type: str = 'DICTATION'
    sample_rate_hz: int = DEFAULT_SAMPLE_RATE_HZ
    audio_queue_capacity: int = 100
    archive_timeout_seconds: float = 30.0
    drain_timeout_seconds: float = 5.0
    metrics_enabled: bool = False
    metrics_namespace: str = 'ScribeRelay/Sessions'
    port: int = 8000
    log_level: str = 'INFO'

    @classmethod
    def from_environment(cls, dotenv_path: Optional[str] = None) -> 'ServiceSettings':
        """
        Load settings from environment variables.

        Environment variables:
        - TRANSCRIBE_REGION (default: us-east-1)
        - S3_BUCKET_REGION (default: us-east-1)
        - S3_BUCKET
        - S3_PREFIX (default: medical-transcriptions)
        - TRANSCRIBE_LANGUAGE_CODE (default: en-US)
        - TRANSCRIBE_SPECIALTY (default: PRIMARYCARE)
        - TRANSCRIBE_TYPE (default: DICTATION)
        - SAMPLE_RATE_HZ (default: 16000, also used when unparsable)
        - AUDIO_QUEUE_CAPACITY (default: 100)
        - ARCHIVE_TIMEOUT_SECONDS (default: 30)
        - DRAIN_TIMEOUT_SECONDS (default: 5)
        - METRICS_ENABLED (default: false)
        - METRICS_NAMESPACE (default: ScribeRelay/Sessions)
        - PORT (default: 8000)
        - LOG_LEVEL (default: INFO)

        Args:
            dotenv_path: Optional path of a .env file to load first

        Returns:
            ServiceSettings

        Raises:
            ConfigurationError: If a numeric setting cannot be parsed or
                the recognition defaults are invalid
        """
        load_dotenv(dotenv_path=dotenv_path, override=False)

        errors = []

        def parse_number(key: str, default, cast):
            raw = get_env(key)
            if not raw:
                return default
            try:
                value = cast(raw)
            except ValueError:
                errors.append(f"{key} must be a number, got {raw!r}")
                return default
            if value <= 0:
                errors.append(f"{key} must be positive, got {raw!r}")
            return value

        try:
            sample_rate_hz = int(get_env('SAMPLE_RATE_HZ'))
        except ValueError:
            sample_rate_hz = DEFAULT_SAMPLE_RATE_HZ

        settings = cls(
            transcribe_region=get_env('TRANSCRIBE_REGION', 'us-east-1'),
            s3_region=get_env('S3_BUCKET_REGION', 'us-east-1'),
            s3_bucket=get_env('S3_BUCKET'),
            s3_prefix=get_env('S3_PREFIX', 'medical-transcriptions').strip('/'),
            language_code=get_env('TRANSCRIBE_LANGUAGE_CODE', 'en-US'),
            specialty=get_env('TRANSCRIBE_SPECIALTY', 'PRIMARYCARE').upper(),
            transcription_type=get_env('TRANSCRIBE_TYPE', 'DICTATION').upper(),
            sample_rate_hz=sample_rate_hz,
            audio_queue_capacity=parse_number('AUDIO_QUEUE_CAPACITY', 100, int),
            archive_timeout_seconds=parse_number('ARCHIVE_TIMEOUT_SECONDS', 30.0, float),
            drain_timeout_seconds=parse_number('DRAIN_TIMEOUT_SECONDS', 5.0, float),
            metrics_enabled=get_env('METRICS_ENABLED', 'false').lower() == 'true',
            metrics_namespace=get_env('METRICS_NAMESPACE', 'ScribeRelay/Sessions'),
            port=parse_number('PORT', 8000, int),
            log_level=get_env('LOG_LEVEL', 'INFO').upper()
        )

        if errors:
            raise ConfigurationError('Invalid configuration', validation_errors=errors)

        try:
            settings.recognition_config()
        except ValueError as e:
            raise ConfigurationError('Invalid recognition defaults', validation_errors=[str(e)]) from e

        if not settings.s3_bucket:
            logger.warning("S3_BUCKET is not set; transcripts cannot be archived")

        logger.info(
            f"Configuration loaded: region={settings.transcribe_region}, "
            f"language={settings.language_code}, specialty={settings.specialty}, "
            f"type={settings.transcription_type}, sample_rate={settings.sample_rate_hz}Hz, "
            f"bucket={settings.s3_bucket or '-'}, prefix={settings.s3_prefix}"
        )

        return settings

    def recognition_config(self) -> RecognitionConfig:
        """
        Build the default recognition configuration.

        Raises:
            ValueError: If a default is not a supported value
        """
        return RecognitionConfig(
            language_code=self.language_code,
            specialty=self.specialty,
            transcription_type=self.transcription_type,
            media_sample_rate_hz=self.sample_rate_hz,
            region=self.transcribe_region
        )
