"""
Order Service: 注文オーケストレーター (Saga)

グローバルトランザクションを使わずに、ユーザー・レストラン・決済サービスを
またいで注文を確定させる。各ステップは注文ストアへのローカルなコミット済み
書き込みと、それに続くステータスイベントで構成される:

  1. ユーザーとレストランを照会 (並行実行し、両方の完了を待つ)
  2. 注文を組み立て、合計金額を再計算
  3. PENDING を永続化                      → ORDER_PLACED
  4. 決済手段が指定されていれば:
       PAYMENT_PROCESSING を永続化         → PAYMENT_PROCESSING
       決済サービスに課金を依頼
       ├─ 成功 → CONFIRMED を永続化        → ORDER_CONFIRMED
       │         PREPARING を永続化        → PREPARING
       └─ 失敗 → PAYMENT_FAILED を永続化   → PAYMENT_FAILED
                 PaymentFailed を送出

ストアへの書き込みは hard: 失敗すると呼び出しは中断し、その遷移のイベントは
発行しない。イベント発行と補完用の照会は soft: 失敗はログに残して処理を続ける。

update_status / cancel_order は終端状態ガード付きで書き込むため、同じ注文への
外部からの変更は直列化され、終端状態から抜け出すことはない。
作成フローの書き込みはガードしない。課金中に cancel_order が入った場合は
後から書いたステータスが残る。
"""

import asyncio
import logging

from .aggregate import advance, apply_external, build_order
from .clients import CatalogClient, IdentityClient, PaymentClient
from .errors import DependencyNotFound, PaymentFailed
from .events import EventType, build_status_event
from .models import (
    CreateOrderRequest,
    Order,
    OrderStatus,
    RestaurantProfile,
    UserProfile,
)
from .publisher import PublishResult, RedisEventPublisher
from .store import OrderStore

logger = logging.getLogger(__name__)


class OrderOrchestrator:
    def __init__(
        self,
        store: OrderStore,
        identity: IdentityClient,
        catalog: CatalogClient,
        payments: PaymentClient,
        publisher: RedisEventPublisher,
        currency: str = "usd",
    ):
        self.store = store
        self.identity = identity
        self.catalog = catalog
        self.payments = payments
        self.publisher = publisher
        self.currency = currency

    # ── Commands ─────────────────────────────────

    async def create_order(self, request: CreateOrderRequest) -> Order:
        """
        注文を作成し、決済手段が指定されていれば課金する。

        決済手段なしなら PENDING、課金成功なら PREPARING の注文を返す。
        課金失敗時は PAYMENT_FAILED を永続化してから PaymentFailed を送出する
        (例外に注文 id を載せる)。
        """
        logger.info(
            "Creating order for user: %s, restaurant: %s",
            request.user_id,
            request.restaurant_id,
        )
        user, restaurant = await self._resolve_profiles(
            request.user_id, request.restaurant_id
        )

        order = await self.store.create(build_order(request))
        logger.info(
            "Order created with ID: %s and status: %s", order.id, order.status.value
        )
        await self._emit(EventType.ORDER_PLACED, order, user, restaurant)

        if not request.payment_method_id:
            return order
        return await self._settle_payment(
            order, request.payment_method_id, user, restaurant
        )

    async def update_status(self, order_id: int, new_status) -> Order:
        target = OrderStatus.parse(new_status)
        logger.info("Updating order %s status to: %s", order_id, target.value)

        order = await self.store.get(order_id)
        order = await self._persist(apply_external(order, target), guard_terminal=True)

        user, restaurant = await self._enrich(order)
        await self._emit(EventType.STATUS_UPDATE, order, user, restaurant)
        return order

    async def cancel_order(self, order_id: int) -> Order:
        logger.info("Cancelling order: %s", order_id)

        order = await self.store.get(order_id)
        order = await self._persist(
            apply_external(order, OrderStatus.CANCELLED), guard_terminal=True
        )

        user, restaurant = await self._enrich(order)
        await self._emit(EventType.ORDER_CANCELLED, order, user, restaurant)
        return order

    # ── Queries ──────────────────────────────────

    async def get_order(self, order_id: int) -> Order:
        return await self.store.get(order_id)

    async def list_orders_by_user(self, user_id: int) -> list[Order]:
        return await self.store.list_by_user(user_id)

    async def list_orders_by_restaurant(self, restaurant_id: int) -> list[Order]:
        return await self.store.list_by_restaurant(restaurant_id)

    # ── Saga steps ───────────────────────────────

    async def _settle_payment(
        self,
        order: Order,
        payment_method_id: str,
        user: UserProfile,
        restaurant: RestaurantProfile,
    ) -> Order:
        order = await self._persist(advance(order, OrderStatus.PAYMENT_PROCESSING))
        await self._emit(EventType.PAYMENT_PROCESSING, order, user, restaurant)

        try:
            result = await self.payments.charge(
                order.id,
                order.user_id,
                order.total_amount,
                payment_method_id,
                self.currency,
            )
        except Exception as e:
            logger.error("Payment processing error for order %s: %s", order.id, e)
            failure = str(e) or type(e).__name__
        else:
            if result.succeeded and result.payment_id is not None:
                order = await self._persist(
                    advance(order, OrderStatus.CONFIRMED, payment_id=result.payment_id)
                )
                logger.info("Payment successful for order: %s", order.id)
                await self._emit(EventType.ORDER_CONFIRMED, order, user, restaurant)

                order = await self._persist(advance(order, OrderStatus.PREPARING))
                await self._emit(EventType.PREPARING, order, user, restaurant)
                return order
            if result.succeeded:
                # payment id のない SUCCESS は記録できないので失敗扱い
                failure = "Payment service reported SUCCESS without a payment id"
            else:
                failure = result.message or f"Payment {result.status}"
            logger.error("Payment failed for order %s: %s", order.id, failure)

        order = await self._persist(advance(order, OrderStatus.PAYMENT_FAILED))
        await self._emit(EventType.PAYMENT_FAILED, order, user, restaurant)
        raise PaymentFailed(failure, order_id=order.id)

    async def _persist(self, order: Order, guard_terminal: bool = False) -> Order:
        saved = await self.store.update(order, guard_terminal=guard_terminal)
        logger.info("Order %s status updated to: %s", saved.id, saved.status.value)
        return saved

    async def _resolve_profiles(
        self, user_id: int, restaurant_id: int
    ) -> tuple[UserProfile, RestaurantProfile]:
        """2 つの照会を並行実行し、両方が終わってから結果を使う。"""
        user, restaurant = await asyncio.gather(
            self.identity.get_user(user_id),
            self.catalog.get_restaurant(restaurant_id),
            return_exceptions=True,
        )
        for outcome in (user, restaurant):
            if isinstance(outcome, BaseException):
                raise outcome
        if user is None:
            raise DependencyNotFound("user", user_id)
        if restaurant is None:
            raise DependencyNotFound("restaurant", restaurant_id)
        logger.info("User found: %s, restaurant found: %s", user.email, restaurant.name)
        return user, restaurant

    async def _enrich(
        self, order: Order
    ) -> tuple[UserProfile | None, RestaurantProfile | None]:
        """イベント用のベストエフォート照会。失敗した側のフィールドは空になる。"""
        user, restaurant = await asyncio.gather(
            self.identity.get_user(order.user_id),
            self.catalog.get_restaurant(order.restaurant_id),
            return_exceptions=True,
        )
        for outcome in (user, restaurant):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
        if isinstance(user, Exception):
            logger.warning("User lookup failed for order %s event: %s", order.id, user)
            user = None
        if isinstance(restaurant, Exception):
            logger.warning(
                "Restaurant lookup failed for order %s event: %s", order.id, restaurant
            )
            restaurant = None
        return user, restaurant

    async def _emit(
        self,
        event_type: EventType,
        order: Order,
        user: UserProfile | None,
        restaurant: RestaurantProfile | None,
    ) -> PublishResult:
        result = await self.publisher.publish(
            event_type, build_status_event(order, user, restaurant)
        )
        if not result.ok:
            logger.warning(
                "Dropped %s event for order %s: %s",
                event_type.value,
                order.id,
                result.error,
            )
        return result
