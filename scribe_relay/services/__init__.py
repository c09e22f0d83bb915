"""
Session services for the dictation relay.

This module provides the audio ingress queue, the AWS Transcribe
streaming client, transcript reconciliation, S3 archiving and the
per-connection session controller.
"""

from .audio_queue import AudioIngressQueue, QueueStats
from .transcribe_client import TranscribeAudioSink, TranscribeStreamingService
from .transcript_reconciler import (
    ReconcileDecision,
    ReconcileOutcome,
    TranscriptReconciler
)
from .transcript_archiver import TranscriptArchiver
from .session_controller import ClientConnection, SessionController

__all__ = [
    'AudioIngressQueue',
    'QueueStats',
    'TranscribeAudioSink',
    'TranscribeStreamingService',
    'ReconcileDecision',
    'ReconcileOutcome',
    'TranscriptReconciler',
    'TranscriptArchiver',
    'ClientConnection',
    'SessionController'
]
