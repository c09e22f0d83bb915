"""
CloudWatch metrics emitter for relay sessions.

This module provides utilities for emitting CloudWatch metrics for
session operations: dropped audio frames, reconciler decisions, upstream
failures, archive outcomes and session duration.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class MetricsEmitter:
    """
    Emits CloudWatch metrics for relay sessions.

    Metrics are buffered and sent in batches. A failed flush is logged and
    the batch discarded; metrics never fail a session.
    """

    def __init__(
        self,
        namespace: str = 'ScribeRelay/Sessions',
        cloudwatch_client=None,
        region: Optional[str] = None,
        buffer_size: int = 20
    ):
        """
        Initialize metrics emitter.

        Args:
            namespace: CloudWatch namespace for metrics
            cloudwatch_client: Optional boto3 CloudWatch client
            region: AWS region used when creating the client
            buffer_size: Number of metrics batched per put_metric_data call
        """
        self.namespace = namespace
        self.cloudwatch = cloudwatch_client or boto3.client('cloudwatch', region_name=region)
        self._metric_buffer: List[Dict] = []
        self._buffer_size = buffer_size
        self._pending_flushes: Set[asyncio.Task] = set()

    def emit_audio_frame_dropped(self, session_id: str, reason: str) -> None:
        """
        Emit metric for a dropped audio frame.

        Args:
            session_id: Session identifier
            reason: Reason for dropping (queue_full, queue_closed)
        """
        self._add_metric(
            metric_name='AudioFramesDropped',
            value=1,
            unit='Count',
            dimensions=[
                {'Name': 'SessionId', 'Value': session_id or 'unknown'},
                {'Name': 'Reason', 'Value': reason}
            ]
        )

    def emit_segment_accepted(self, session_id: str, decision: str) -> None:
        """Emit metric for an accepted final segment."""
        self._add_metric(
            metric_name='SegmentsAccepted',
            value=1,
            unit='Count',
            dimensions=[
                {'Name': 'SessionId', 'Value': session_id},
                {'Name': 'Decision', 'Value': decision}
            ]
        )

    def emit_segment_discarded(self, session_id: str, decision: str) -> None:
        """Emit metric for a discarded final result."""
        self._add_metric(
            metric_name='SegmentsDiscarded',
            value=1,
            unit='Count',
            dimensions=[
                {'Name': 'SessionId', 'Value': session_id},
                {'Name': 'Decision', 'Value': decision}
            ]
        )

    def emit_upstream_error(self, session_id: str, error_type: str) -> None:
        """
        Emit metric for a recognition stream error.

        Args:
            session_id: Session identifier
            error_type: Error code value
        """
        self._add_metric(
            metric_name='TranscribeStreamErrors',
            value=1,
            unit='Count',
            dimensions=[
                {'Name': 'SessionId', 'Value': session_id},
                {'Name': 'ErrorType', 'Value': error_type}
            ]
        )

    def emit_archive_result(self, session_id: str, success: bool, latency_ms: float) -> None:
        """Emit metrics for one archive attempt."""
        self._add_metric(
            metric_name='ArchiveSucceeded' if success else 'ArchiveFailed',
            value=1,
            unit='Count',
            dimensions=[{'Name': 'SessionId', 'Value': session_id}]
        )
        self._add_metric(
            metric_name='ArchiveLatency',
            value=latency_ms,
            unit='Milliseconds',
            dimensions=[{'Name': 'SessionId', 'Value': session_id}]
        )

    def emit_session_completed(
        self,
        session_id: str,
        duration_seconds: float,
        segment_count: int
    ) -> None:
        """Emit metrics for a closed session."""
        self._add_metric(
            metric_name='SessionDuration',
            value=duration_seconds,
            unit='Seconds',
            dimensions=[{'Name': 'SessionId', 'Value': session_id}]
        )
        self._add_metric(
            metric_name='SessionSegments',
            value=segment_count,
            unit='Count',
            dimensions=[{'Name': 'SessionId', 'Value': session_id}]
        )

    def _add_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: List[Dict]
    ) -> None:
        """
        Add metric to buffer and flush if needed.

        Emitters are called from the event loop (the audio queue's push,
        the session controller), so a full buffer is published from a
        worker thread when a loop is running.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Metric unit
            dimensions: Metric dimensions
        """
        self._metric_buffer.append({
            'MetricName': metric_name,
            'Value': value,
            'Unit': unit,
            'Dimensions': dimensions,
            'Timestamp': time.time()
        })

        if len(self._metric_buffer) >= self._buffer_size:
            self._schedule_flush()

    def _take_batch(self) -> List[Dict]:
        batch, self._metric_buffer = self._metric_buffer, []
        return batch

    def _schedule_flush(self) -> None:
        """Publish the buffer without blocking a running event loop."""
        batch = self._take_batch()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._put_metric_data(batch)
            return

        task = loop.create_task(asyncio.to_thread(self._put_metric_data, batch))
        self._pending_flushes.add(task)
        task.add_done_callback(self._pending_flushes.discard)

    def flush(self) -> None:
        """Flush buffered metrics to CloudWatch (blocking; not for the event loop)."""
        batch = self._take_batch()
        if batch:
            self._put_metric_data(batch)

    async def flush_async(self) -> None:
        """Flush buffered metrics from a worker thread and wait for pending batches."""
        batch = self._take_batch()
        if batch:
            await asyncio.to_thread(self._put_metric_data, batch)

        if self._pending_flushes:
            await asyncio.gather(*self._pending_flushes, return_exceptions=True)

    def _put_metric_data(self, batch: List[Dict]) -> None:
        try:
            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=batch
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Failed to emit {len(batch)} metrics: {e}")
