"""
Order Service: ステータスイベントの発行

OrderStatusEvent を Redis Pub/Sub チャンネルに発行し、通知側のコンシューマーに届ける。

発行はベストエフォート。publish() は例外を送出せず、結果を PublishResult として
返す。失敗した発行はここではリトライしない。Redis Pub/Sub は
fire-and-forget なので、発行時に停止していたサブスクライバーはそのイベントを受け取れない。
"""

import asyncio
import logging
from dataclasses import dataclass

import redis.asyncio as aioredis

from .events import EventType, OrderStatusEvent, encode_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishResult:
    event_type: EventType
    order_id: int
    ok: bool
    error: str | None = None
    receivers: int = 0


class RedisEventPublisher:
    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str = "order.status",
        timeout: float = 2.0,
    ):
        self.redis = redis
        self.channel = channel
        self.timeout = timeout

    async def publish(
        self, event_type: EventType, event: OrderStatusEvent
    ) -> PublishResult:
        try:
            receivers = await asyncio.wait_for(
                self.redis.publish(self.channel, encode_event(event_type, event)),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(
                "Failed to publish %s event for order %s: %s",
                event_type.value,
                event.order_id,
                e,
            )
            return PublishResult(
                event_type, event.order_id, ok=False, error=str(e) or type(e).__name__
            )

        logger.info(
            "Published %s event for order: %s (status=%s)",
            event_type.value,
            event.order_id,
            event.status.value,
        )
        return PublishResult(
            event_type, event.order_id, ok=True, receivers=receivers or 0
        )
