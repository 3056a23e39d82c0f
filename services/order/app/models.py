"""
Order Service: ドメインモデル

注文、注文明細、ステータス列挙型、そしてユーザー / レストラン / 決済
サービスが返すプロファイル。

フィールド名は Python 側では snake_case、通信上は camelCase。
周辺サービスの JSON にそのまま合わせる。
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import InvalidRequest


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """生のステータス値をパースする。未知の値は呼び出し側の誤り。"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidRequest(f"Unknown order status: {value!r}") from None


TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.PAYMENT_FAILED}
)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ── Collaborator profiles ────────────────────────


class UserProfile(_WireModel):
    id: int
    email: str | None = None
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("displayName", "display_name", "name")
    )
    phone: str | None = Field(
        default=None, validation_alias=AliasChoices("phone", "phoneNumber")
    )
    role: str | None = None


class RestaurantProfile(_WireModel):
    id: int
    name: str
    address: str | None = None
    owner_email: str | None = None
    active: bool = Field(default=True, validation_alias=AliasChoices("active", "isActive"))


class PaymentResult(_WireModel):
    payment_id: int | None = None
    status: str
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status.upper() == "SUCCESS"


# ── Requests ─────────────────────────────────────


class OrderLineRequest(_WireModel):
    menu_item_id: int
    menu_item_name: str
    quantity: int
    price: Decimal = Field(validation_alias=AliasChoices("price", "unitPrice", "unit_price"))


class CreateOrderRequest(_WireModel):
    user_id: int
    restaurant_id: int
    delivery_address: str
    items: list[OrderLineRequest]
    payment_method_id: str | None = None
    # 互換のため受け付けるが使わない (合計は再計算する)
    total_amount: Decimal | None = None


class UpdateStatusRequest(_WireModel):
    status: str


# ── Orders ───────────────────────────────────────


class OrderLine(_WireModel):
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class Order(_WireModel):
    id: int | None = None
    user_id: int
    restaurant_id: int
    delivery_address: str
    status: OrderStatus = OrderStatus.PENDING
    total_amount: Decimal
    payment_id: int | None = None
    lines: list[OrderLine] = Field(default_factory=list)
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
