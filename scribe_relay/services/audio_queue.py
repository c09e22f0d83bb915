"""
Audio ingress queue decoupling the client reader from the Transcribe sender.

This module provides a bounded queue for audio frames. When the sender
cannot keep up with the client, new frames are dropped instead of
blocking the connection reader, trading completeness for latency.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    """
    Statistics for the audio ingress queue.

    Attributes:
        capacity: Maximum number of buffered frames
        current_size: Current number of frames in queue
        total_received: Frames offered to push()
        total_dropped: Frames discarded because the queue was full or closed
        overflow_count: Number of overflow events
        is_full: Whether queue is currently full
        is_closed: Whether the producer side is closed
    """
    capacity: int
    current_size: int
    total_received: int
    total_dropped: int
    overflow_count: int
    is_full: bool
    is_closed: bool


class AudioIngressQueue:
    """
    Bounded single-producer, single-consumer queue of audio frames.

    Features:
    - Fixed capacity (100 frames by default)
    - push() never blocks; the incoming frame is dropped when full
    - close() is the end-of-audio signal; pop() returns None once the
      queue is closed and drained

    Examples:
        >>> queue = AudioIngressQueue(capacity=100)
        >>> queue.push(frame)
        True
        >>> await queue.pop()
        b'...'
    """

    def __init__(
        self,
        capacity: int = 100,
        session_id: str = '',
        metrics=None
    ):
        """
        Initialize audio ingress queue.

        Args:
            capacity: Maximum number of buffered frames (default: 100)
            session_id: Session ID for logging and metrics
            metrics: Optional MetricsEmitter
        """
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")

        self.capacity = capacity
        self.session_id = session_id
        self.metrics = metrics

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()

        # Statistics
        self.total_received = 0
        self.total_dropped = 0
        self.overflow_count = 0
        self.last_overflow_time: Optional[float] = None

        logger.debug(
            f"Initialized AudioIngressQueue: capacity={capacity} frames "
            f"for session {session_id}"
        )

    def push(self, frame: bytes) -> bool:
        """
        Offer a frame to the queue without blocking.

        Args:
            frame: Encoded PCM audio

        Returns:
            True if the frame was queued, False if it was dropped
        """
        self.total_received += 1

        if self._closed.is_set():
            self.total_dropped += 1
            self._emit_drop_metric('queue_closed')
            logger.debug(f"Queue closed for session {self.session_id}, dropping frame")
            return False

        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.total_dropped += 1
            self.overflow_count += 1
            self.last_overflow_time = time.time()

            logger.warning(
                f"Audio buffer full for session {self.session_id}, "
                f"dropping frame (total_dropped={self.total_dropped})"
            )
            self._emit_drop_metric('queue_full')
            return False

        return True

    async def pop(self) -> Optional[bytes]:
        """
        Wait for the next frame (FIFO).

        Frames queued before close() are still returned; after that,
        None signals that no more audio will arrive.

        Returns:
            Audio bytes, or None once closed and drained
        """
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()

            if self._closed.is_set():
                return None

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, closer},
                    return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                # Queue.get() leaves the item queued when cancelled
                getter.cancel()
                closer.cancel()

            if getter in done and not getter.cancelled():
                return getter.result()

    def close(self) -> None:
        """Close the producer side. Idempotent."""
        if self._closed.is_set():
            return

        self._closed.set()
        logger.debug(
            f"Closed audio queue for session {self.session_id}: "
            f"{self._queue.qsize()} frames pending"
        )

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def is_full(self) -> bool:
        """Check if queue is full."""
        return self._queue.full()

    def size(self) -> int:
        """Get current queue size in frames."""
        return self._queue.qsize()

    def get_stats(self) -> QueueStats:
        """
        Get queue statistics.

        Returns:
            QueueStats with current statistics
        """
        return QueueStats(
            capacity=self.capacity,
            current_size=self._queue.qsize(),
            total_received=self.total_received,
            total_dropped=self.total_dropped,
            overflow_count=self.overflow_count,
            is_full=self.is_full(),
            is_closed=self.is_closed
        )

    def _emit_drop_metric(self, reason: str) -> None:
        """
        Emit CloudWatch metric for a dropped frame.

        Args:
            reason: 'queue_full' or 'queue_closed'
        """
        if not self.metrics:
            return

        self.metrics.emit_audio_frame_dropped(self.session_id, reason)
