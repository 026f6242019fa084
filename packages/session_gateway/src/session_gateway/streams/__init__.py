"""
Session Redis Streams

Producer for session lifecycle events.
"""

from session_gateway.streams.producer import DEFAULT_STREAM, SessionEventProducer

__all__ = ["DEFAULT_STREAM", "SessionEventProducer"]
