"""
Order Service: 注文ストア

注文と明細を永続化する CRUD。注文状態を書き込むのはこのコンポーネントだけ。

各呼び出しは独自のセッションで実行し、戻る前にコミットする。結果を受け取った
呼び出し元は、書き込みが永続化済みであることを前提にできる。すべての呼び出しは
タイムアウト付きで、タイムアウトも DB エラーも DependencyUnavailable("order-store")
として表面化する。

外部からの状態変更 (update_status / cancel_order) は guard_terminal=True で書き込む。
終端状態でない行だけを更新する条件付き UPDATE なので、読み出しと書き込みの間に
別の呼び出しが注文を終端状態にしていれば InvalidTransition になる。
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import DependencyUnavailable, InvalidTransition, NotFound
from .models import TERMINAL_STATUSES, Order, OrderLine, OrderStatus
from .schema import order_lines, orders

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.timeout = timeout

    # ── Public API ───────────────────────────────

    async def create(self, order: Order) -> Order:
        """注文を明細ごと挿入し、id を設定した注文を返す。"""
        return await self._run("create", self._create(order))

    async def get(self, order_id: int) -> Order:
        order = await self._run("get", self._get(order_id))
        if order is None:
            raise NotFound(order_id)
        return order

    async def update(self, order: Order, guard_terminal: bool = False) -> Order:
        """
        ステータスと payment id を書き込む。明細は書き換えない。

        guard_terminal=True のとき、保存済みの行が終端状態なら書き込まずに
        InvalidTransition を送出する。判定と更新は同じ UPDATE 文で行う。
        """
        return await self._run("update", self._update(order, guard_terminal))

    async def list_by_user(self, user_id: int) -> list[Order]:
        return await self._run(
            "list_by_user", self._list(orders.c.user_id == user_id)
        )

    async def list_by_restaurant(self, restaurant_id: int) -> list[Order]:
        return await self._run(
            "list_by_restaurant", self._list(orders.c.restaurant_id == restaurant_id)
        )

    # ── Internals ────────────────────────────────

    async def _run(self, operation: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("Order store %s timed out after %ss", operation, self.timeout)
            raise DependencyUnavailable(
                "order-store", f"{operation} timed out after {self.timeout}s"
            ) from e
        except SQLAlchemyError as e:
            logger.error("Order store %s failed: %s", operation, e)
            raise DependencyUnavailable("order-store", f"{operation} failed: {e}") from e

    async def _create(self, order: Order) -> Order:
        now = _now()
        async with self.session_factory() as session:
            result = await session.execute(
                insert(orders)
                .values(
                    user_id=order.user_id,
                    restaurant_id=order.restaurant_id,
                    delivery_address=order.delivery_address,
                    status=order.status.value,
                    total_amount=order.total_amount,
                    payment_id=order.payment_id,
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
                .returning(orders.c.id)
            )
            order_id = result.scalar_one()

            if order.lines:
                await session.execute(
                    insert(order_lines),
                    [
                        {
                            "order_id": order_id,
                            "position": position,
                            "menu_item_id": line.menu_item_id,
                            "menu_item_name": line.menu_item_name,
                            "quantity": line.quantity,
                            "unit_price": line.unit_price,
                            "subtotal": line.subtotal,
                        }
                        for position, line in enumerate(order.lines)
                    ],
                )
            await session.commit()

        return order.model_copy(
            update={"id": order_id, "version": 1, "created_at": now, "updated_at": now}
        )

    async def _update(self, order: Order, guard_terminal: bool) -> Order:
        now = _now()
        condition = orders.c.id == order.id
        if guard_terminal:
            condition = condition & orders.c.status.not_in(
                [status.value for status in TERMINAL_STATUSES]
            )
        async with self.session_factory() as session:
            result = await session.execute(
                update(orders)
                .where(condition)
                .values(
                    status=order.status.value,
                    payment_id=order.payment_id,
                    version=orders.c.version + 1,
                    updated_at=now,
                )
                .returning(orders.c.version)
            )
            version = result.scalar_one_or_none()
            if version is None:
                # 該当行なし: 注文が存在しないか、既に終端状態
                current = await session.scalar(
                    select(orders.c.status).where(orders.c.id == order.id)
                )
                if current is None:
                    raise NotFound(order.id)
                raise InvalidTransition(
                    f"Order {order.id} is {current} and can no longer change"
                )
            await session.commit()

        return order.model_copy(update={"version": version, "updated_at": now})

    async def _get(self, order_id: int) -> Order | None:
        async with self.session_factory() as session:
            result = await session.execute(select(orders).where(orders.c.id == order_id))
            row = result.fetchone()
            if row is None:
                return None
            lines = await self._load_lines(session, [row.id])
        return _row_to_order(row, lines.get(row.id, []))

    async def _list(self, condition) -> list[Order]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(orders)
                .where(condition)
                .order_by(orders.c.created_at.desc(), orders.c.id.desc())
            )
            rows = result.fetchall()
            lines = await self._load_lines(session, [row.id for row in rows])
        return [_row_to_order(row, lines.get(row.id, [])) for row in rows]

    async def _load_lines(
        self, session: AsyncSession, order_ids: list[int]
    ) -> dict[int, list[OrderLine]]:
        if not order_ids:
            return {}
        result = await session.execute(
            select(order_lines)
            .where(order_lines.c.order_id.in_(order_ids))
            .order_by(order_lines.c.order_id, order_lines.c.position)
        )
        grouped: dict[int, list[OrderLine]] = {}
        for row in result.fetchall():
            grouped.setdefault(row.order_id, []).append(
                OrderLine(
                    menu_item_id=row.menu_item_id,
                    menu_item_name=row.menu_item_name,
                    quantity=row.quantity,
                    unit_price=row.unit_price,
                    subtotal=row.subtotal,
                )
            )
        return grouped


def _row_to_order(row, lines: list[OrderLine]) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        restaurant_id=row.restaurant_id,
        delivery_address=row.delivery_address,
        status=OrderStatus(row.status),
        total_amount=row.total_amount,
        payment_id=row.payment_id,
        lines=lines,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
