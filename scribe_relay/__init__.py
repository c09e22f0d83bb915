"""
Live dictation relay.

Relays browser microphone audio to AWS Transcribe streaming, returns
partial and reconciled final transcripts over a WebSocket and archives
the final transcript to S3.
"""

__version__ = '1.0.0'
