"""
S3 archiving of finished transcripts.

The archiver writes the whole transcript of a session as one text/plain
object. It runs after the live stream has ended, often after the session
was cancelled, so the write gets its own time budget instead of the
session's cancellation signal. There is one attempt and no retry.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from scribe_relay.exceptions import StorageFailureError

logger = logging.getLogger(__name__)

KEY_TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'
CONTENT_TYPE = 'text/plain'


def create_s3_client(region: Optional[str] = None, timeout_seconds: float = 30.0):
    """
    Create an S3 client for a single best-effort write.

    Args:
        region: Bucket region
        timeout_seconds: Connect/read timeout

    Returns:
        boto3 S3 client with retries disabled
    """
    config = Config(
        connect_timeout=timeout_seconds,
        read_timeout=timeout_seconds,
        retries={'max_attempts': 1, 'mode': 'standard'}
    )
    return boto3.client('s3', region_name=region, config=config)


class TranscriptArchiver:
    """
    Writes transcripts to S3 under a configured prefix.

    Keys have the form:
        {prefix}/transcription_{YYYY-mm-dd_HH-MM-SS}_{suffix}.txt

    Examples:
        >>> archiver = TranscriptArchiver(bucket='my-bucket')
        >>> key = await archiver.save('patient reports pain', suffix='9f2c01ab')
        >>> key
        'medical-transcriptions/transcription_2024-05-01_10-15-00_9f2c01ab.txt'
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = 'medical-transcriptions',
        s3_client=None,
        region: Optional[str] = None,
        timeout_seconds: float = 30.0,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize transcript archiver.

        Args:
            bucket: Target bucket
            prefix: Key prefix (without trailing slash)
            s3_client: Optional boto3 S3 client
            region: Bucket region used when creating the client
            timeout_seconds: Upper bound of one save() call
            clock: Returns the current UTC time (for tests)
        """
        self.bucket = bucket
        self.prefix = prefix.strip('/')
        self.timeout_seconds = timeout_seconds
        self.s3 = s3_client or create_s3_client(region, timeout_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_key(self, now: datetime, suffix: str = '') -> str:
        """
        Build the object key for a transcript.

        Args:
            now: Timestamp embedded in the key
            suffix: Session-scoped token appended to the timestamp

        Returns:
            Object key
        """
        filename = f"transcription_{now.strftime(KEY_TIMESTAMP_FORMAT)}"
        if suffix:
            filename = f"{filename}_{suffix}"
        filename = f"{filename}.txt"

        if not self.prefix:
            return filename
        return f"{self.prefix}/{filename}"

    async def save(
        self,
        full_text: str,
        suffix: str = '',
        metadata: Optional[Dict[str, str]] = None
    ) -> Optional[str]:
        """
        Write a transcript to S3.

        Does nothing and returns None when full_text is empty.

        Args:
            full_text: Complete transcript
            suffix: Session-scoped token for the key
            metadata: Optional S3 user metadata

        Returns:
            Object key, or None if there was nothing to write

        Raises:
            StorageFailureError: If the write fails or times out
        """
        if not full_text:
            logger.info("No transcription to save")
            return None

        if not self.bucket:
            raise StorageFailureError("No archive bucket configured")

        key = self.build_key(self._clock(), suffix)
        start_time = time.time()

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._put_object, key, full_text, metadata or {}),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise StorageFailureError(
                f"Timed out after {self.timeout_seconds}s writing {key}",
                key=key,
                original_error=e
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise StorageFailureError(
                f"Failed to upload {key} to S3: {e}",
                key=key,
                original_error=e
            ) from e

        logger.info(
            f"Transcription saved to s3://{self.bucket}/{key} "
            f"({len(full_text)} chars in {(time.time() - start_time) * 1000:.0f}ms)"
        )
        return key

    def _put_object(self, key: str, full_text: str, metadata: Dict[str, str]) -> None:
        self.s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=full_text.encode('utf-8'),
            ContentType=CONTENT_TYPE,
            Metadata=metadata
        )
