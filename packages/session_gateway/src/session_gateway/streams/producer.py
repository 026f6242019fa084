"""
Session Event Producer

Publishes session lifecycle events to a Redis Stream.
"""

import asyncio
import logging
from typing import Any

import redis

from session_gateway.contracts.envelope import SessionEnvelope
from session_gateway.contracts.event_types import SessionEventType

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "gw:session:events"


class SessionEventProducer:
    """
    Producer for publishing session events to Redis Streams.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_name: str = DEFAULT_STREAM,
        max_len: int = 100000,
    ):
        self.redis = redis_client
        self.stream_name = stream_name
        self.max_len = max_len

    def publish(
        self,
        event_type: SessionEventType,
        tenant_id: str,
        payload: dict[str, Any] | None = None,
    ) -> str:
        """
        Publish one event.

        Returns:
            Stream message ID
        """
        envelope = SessionEnvelope.create(
            event_type=event_type.value,
            tenant_id=tenant_id,
            payload=payload or {},
        )

        msg_id = self.redis.xadd(
            self.stream_name,
            envelope.to_stream_data(),
            maxlen=self.max_len,
            approximate=True,
        )

        logger.debug(
            f"Published to {self.stream_name}",
            extra={
                "stream": self.stream_name,
                "event_type": envelope.event_type,
                "event_id": str(envelope.event_id),
                "msg_id": msg_id,
            },
        )

        return msg_id

    async def publish_safely(
        self,
        event_type: SessionEventType,
        tenant_id: str,
        payload: dict[str, Any] | None = None,
    ) -> str | None:
        """Publish from async code; failures are logged and yield None."""
        try:
            return await asyncio.to_thread(self.publish, event_type, tenant_id, payload)
        except redis.RedisError as e:
            logger.error(
                f"Failed to publish session event: {e}",
                extra={"event_type": event_type.value, "tenant_id": tenant_id},
            )
            return None
