"""
Order Service: ステータスイベント定義

永続化された遷移ごとに OrderStatusEvent を 1 つ発行する。イベントは
転送用のスナップショットで、永続化直後の注文と、呼び出し中の操作が持っている
ユーザー / レストランのプロファイルから組み立てる。保存も修正もしない。
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .models import Order, OrderStatus, RestaurantProfile, UserProfile


class EventType(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    PREPARING = "PREPARING"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    STATUS_UPDATE = "STATUS_UPDATE"
    ORDER_CANCELLED = "ORDER_CANCELLED"


class OrderStatusEvent(BaseModel):
    """イベント発行側に渡すステータスのスナップショット。"""

    model_config = ConfigDict(frozen=True)

    order_id: int
    user_id: int
    user_email: str | None = None
    restaurant_id: int
    restaurant_name: str | None = None
    restaurant_owner_email: str | None = None
    status: OrderStatus
    total_amount: Decimal
    delivery_address: str


def build_status_event(
    order: Order,
    user: UserProfile | None,
    restaurant: RestaurantProfile | None,
) -> OrderStatusEvent:
    return OrderStatusEvent(
        order_id=order.id,
        user_id=order.user_id,
        user_email=user.email if user else None,
        restaurant_id=order.restaurant_id,
        restaurant_name=restaurant.name if restaurant else None,
        restaurant_owner_email=restaurant.owner_email if restaurant else None,
        status=order.status,
        total_amount=order.total_amount,
        delivery_address=order.delivery_address,
    )


def encode_event(event_type: EventType, event: OrderStatusEvent) -> str:
    """イベントをチャンネルに発行する JSON エンベロープにシリアライズする。"""
    return json.dumps(
        {
            "event_type": event_type.value,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "data": event.model_dump(mode="json"),
        },
        default=str,
    )
