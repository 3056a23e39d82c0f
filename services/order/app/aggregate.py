"""
Order Service: 注文集約とステータス状態機械

作成リクエストから新しい注文を組み立て、ステータス遷移ごとに次の注文の値を
計算する。ここではストアに触れない: 遷移は新しい Order を返すだけで、
オーケストレーターはストアが書き込みを受け付けてからそれを採用する。

状態遷移:
    PENDING → PAYMENT_PROCESSING → CONFIRMED → PREPARING
            → OUT_FOR_DELIVERY → DELIVERED
    終端以外の任意の状態 → PAYMENT_FAILED | CANCELLED

    DELIVERED, CANCELLED, PAYMENT_FAILED は終端状態。
"""

from decimal import Decimal

from .errors import InvalidRequest, InvalidTransition
from .models import CreateOrderRequest, Order, OrderLine, OrderStatus

# 作成フローが自ら進めてよい遷移
AUTOMATIC_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAYMENT_PROCESSING}),
    OrderStatus.PAYMENT_PROCESSING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.PAYMENT_FAILED}
    ),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING}),
}

ZERO = Decimal("0")
CENT = Decimal("0.01")


def is_whole_cents(value: Decimal) -> bool:
    return value == value.quantize(CENT)


def build_order(request: CreateOrderRequest) -> Order:
    """
    作成リクエストから未保存の PENDING 注文を組み立てる。

    明細の名前と価格はリクエストのスナップショットとしてコピーし、
    合計金額は常に明細から再計算する。1 セント未満の端数を持つ価格は丸めずに拒否する。
    """
    if not request.items:
        raise InvalidRequest("Order must contain at least one item")

    lines: list[OrderLine] = []
    for item in request.items:
        if item.quantity <= 0:
            raise InvalidRequest(
                f"Quantity must be positive for menu item {item.menu_item_id}"
            )
        if item.price < ZERO:
            raise InvalidRequest(
                f"Price must not be negative for menu item {item.menu_item_id}"
            )
        if not is_whole_cents(item.price):
            raise InvalidRequest(
                f"Price must be a whole number of cents for menu item {item.menu_item_id}"
            )
        unit_price = item.price.quantize(CENT)
        lines.append(
            OrderLine(
                menu_item_id=item.menu_item_id,
                menu_item_name=item.menu_item_name,
                quantity=item.quantity,
                unit_price=unit_price,
                subtotal=unit_price * item.quantity,
            )
        )

    return Order(
        user_id=request.user_id,
        restaurant_id=request.restaurant_id,
        delivery_address=request.delivery_address,
        status=OrderStatus.PENDING,
        total_amount=sum((line.subtotal for line in lines), ZERO),
        lines=lines,
    )


def ensure_mutable(order: Order) -> None:
    if order.status.is_terminal:
        raise InvalidTransition(
            f"Order {order.id} is {order.status.value} and can no longer change"
        )


def advance(order: Order, target: OrderStatus, **changes) -> Order:
    """作成フローが進める遷移の、次の注文の値。"""
    ensure_mutable(order)
    allowed = AUTOMATIC_TRANSITIONS.get(order.status, frozenset())
    if target not in allowed:
        raise InvalidTransition(
            f"Order {order.id} cannot move from {order.status.value} to {target.value}"
        )
    return order.model_copy(update={"status": target, **changes})


def apply_external(order: Order, target) -> Order:
    """
    外部から要求されたステータス変更の、次の注文の値。

    禁止されるのは終端状態から抜けることだけ。`target` は文字列でもよく、ここでパースする。
    """
    target = OrderStatus.parse(target)
    ensure_mutable(order)
    return order.model_copy(update={"status": target})
