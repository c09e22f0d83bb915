"""
Configuration data model for recognition streams.

This module defines the dataclass that carries every parameter needed to
open a medical transcription stream: language, specialty, transcription
type and media format.
"""

from dataclasses import dataclass, replace
from typing import Optional


VALID_SPECIALTIES = (
    'PRIMARYCARE',
    'CARDIOLOGY',
    'NEUROLOGY',
    'ONCOLOGY',
    'RADIOLOGY',
    'UROLOGY',
)

VALID_TRANSCRIPTION_TYPES = ('CONVERSATION', 'DICTATION')

VALID_SAMPLE_RATES = (8000, 16000, 24000, 32000, 44100, 48000)

VALID_ENCODINGS = ('pcm',)


@dataclass(frozen=True)
class RecognitionConfig:
    """
    Configuration for one recognition stream.

    A session copies the service defaults and applies per-connection
    overrides through with_overrides(); the result is immutable for the
    lifetime of the session.

    Attributes:
        language_code: Language code (e.g., 'en-US')
        specialty: Medical specialty (default: 'PRIMARYCARE')
        transcription_type: 'DICTATION' or 'CONVERSATION' (default: 'DICTATION')
        media_sample_rate_hz: Audio sample rate in Hz (default: 16000)
        number_of_channels: Interleaved PCM channels (default: 2)
        media_encoding: Audio encoding (only 'pcm' is accepted)
        region: AWS region of the recognition service

    Examples:
        >>> config = RecognitionConfig()
        >>> config.with_overrides(specialty='CARDIOLOGY').specialty
        'CARDIOLOGY'
    """

    language_code: str = 'en-US'
    specialty: str = 'PRIMARYCARE'
    transcription_type: str = 'DICTATION'
    media_sample_rate_hz: int = 16000
    number_of_channels: int = 2
    media_encoding: str = 'pcm'
    region: str = 'us-east-1'

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any parameter is outside its valid set
        """
        if not self.language_code or len(self.language_code) < 2:
            raise ValueError(
                f"Invalid language_code: {self.language_code}. "
                f"Expected format: 'en-US', 'es-ES', etc."
            )

        if self.specialty not in VALID_SPECIALTIES:
            raise ValueError(
                f"Invalid specialty: {self.specialty}. "
                f"Must be one of {list(VALID_SPECIALTIES)}"
            )

        if self.transcription_type not in VALID_TRANSCRIPTION_TYPES:
            raise ValueError(
                f"Invalid transcription_type: {self.transcription_type}. "
                f"Must be one of {list(VALID_TRANSCRIPTION_TYPES)}"
            )

        if self.media_sample_rate_hz not in VALID_SAMPLE_RATES:
            raise ValueError(
                f"Invalid media_sample_rate_hz: {self.media_sample_rate_hz}. "
                f"Must be one of {list(VALID_SAMPLE_RATES)}"
            )

        if self.number_of_channels not in (1, 2):
            raise ValueError(
                f"number_of_channels must be 1 or 2, "
                f"got {self.number_of_channels}"
            )

        if self.media_encoding not in VALID_ENCODINGS:
            raise ValueError(
                f"Invalid media_encoding: {self.media_encoding}. "
                f"Must be one of {list(VALID_ENCODINGS)}"
            )

    def __post_init__(self):
        """Validate configuration on initialization."""
        self.validate()

    def with_overrides(
        self,
        specialty: Optional[str] = None,
        transcription_type: Optional[str] = None
    ) -> 'RecognitionConfig':
        """
        Return a copy with per-connection overrides applied.

        Empty or missing overrides keep the current value. Values are
        upper-cased before validation, so '?specialty=cardiology' works.

        Raises:
            ValueError: If an override is not a supported value
        """
        changes = {}
        if specialty:
            changes['specialty'] = specialty.upper()
        if transcription_type:
            changes['transcription_type'] = transcription_type.upper()

        if not changes:
            return self

        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Return stream parameters, useful for logging."""
        return {
            'language_code': self.language_code,
            'specialty': self.specialty,
            'transcription_type': self.transcription_type,
            'media_sample_rate_hz': self.media_sample_rate_hz,
            'number_of_channels': self.number_of_channels,
            'media_encoding': self.media_encoding,
            'region': self.region,
        }
