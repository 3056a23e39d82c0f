"""Shared fixtures: in-memory collaborators so the saga runs without network or database."""
from __future__ import annotations

import pytest

from app.errors import DependencyUnavailable, InvalidTransition, NotFound
from app.events import EventType, OrderStatusEvent
from app.models import Order, PaymentResult, RestaurantProfile, UserProfile
from app.orchestrator import OrderOrchestrator
from app.publisher import PublishResult


# ---------- Fakes ----------

class InMemoryStore:
    """Order store double. Writes are appended to a shared journal."""

    def __init__(self, journal: list):
        self.journal = journal
        self.rows: dict[int, Order] = {}
        self.next_id = 1
        self.fail_on_status = None

    async def create(self, order: Order) -> Order:
        self._maybe_fail(order)
        saved = order.model_copy(update={"id": self.next_id, "version": 1})
        self.next_id += 1
        self.rows[saved.id] = saved
        self.journal.append(("persist", saved.status.value))
        return saved

    async def get(self, order_id: int) -> Order:
        if order_id not in self.rows:
            raise NotFound(order_id)
        return self.rows[order_id]

    async def update(self, order: Order, guard_terminal: bool = False) -> Order:
        self._maybe_fail(order)
        if order.id not in self.rows:
            raise NotFound(order.id)
        current = self.rows[order.id]
        if guard_terminal and current.status.is_terminal:
            raise InvalidTransition(
                f"Order {order.id} is {current.status.value} and can no longer change"
            )
        saved = order.model_copy(update={"version": self.rows[order.id].version + 1})
        self.rows[order.id] = saved
        self.journal.append(("persist", saved.status.value))
        return saved

    async def list_by_user(self, user_id: int) -> list[Order]:
        return [o for o in self.rows.values() if o.user_id == user_id]

    async def list_by_restaurant(self, restaurant_id: int) -> list[Order]:
        return [o for o in self.rows.values() if o.restaurant_id == restaurant_id]

    def _maybe_fail(self, order: Order) -> None:
        if self.fail_on_status is not None and order.status == self.fail_on_status:
            raise DependencyUnavailable("order-store", "write refused")


class FakeIdentity:
    def __init__(self, users: dict[int, UserProfile]):
        self.users = users
        self.error: Exception | None = None
        self.calls: list[int] = []

    async def get_user(self, user_id: int) -> UserProfile | None:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.users.get(user_id)


class FakeCatalog:
    def __init__(self, restaurants: dict[int, RestaurantProfile]):
        self.restaurants = restaurants
        self.error: Exception | None = None
        self.calls: list[int] = []

    async def get_restaurant(self, restaurant_id: int) -> RestaurantProfile | None:
        self.calls.append(restaurant_id)
        if self.error is not None:
            raise self.error
        return self.restaurants.get(restaurant_id)


class FakePayments:
    def __init__(self, result: PaymentResult | None = None):
        self.result = result or PaymentResult(payment_id=77, status="SUCCESS", message="ok")
        self.error: Exception | None = None
        self.charges: list[dict] = []

    async def charge(self, order_id, user_id, amount, payment_method_id, currency="usd"):
        self.charges.append(
            {
                "order_id": order_id,
                "user_id": user_id,
                "amount": amount,
                "payment_method_id": payment_method_id,
                "currency": currency,
            }
        )
        if self.error is not None:
            raise self.error
        return self.result


class RecordingPublisher:
    def __init__(self, journal: list):
        self.journal = journal
        self.events: list[tuple[EventType, OrderStatusEvent]] = []
        self.fail = False

    async def publish(self, event_type: EventType, event: OrderStatusEvent) -> PublishResult:
        self.journal.append(("publish", event.status.value))
        if self.fail:
            return PublishResult(event_type, event.order_id, ok=False, error="broker down")
        self.events.append((event_type, event))
        return PublishResult(event_type, event.order_id, ok=True, receivers=1)

    @property
    def statuses(self) -> list[str]:
        return [event.status.value for _, event in self.events]


# ---------- Fixtures ----------

@pytest.fixture()
def journal() -> list:
    return []


@pytest.fixture()
def store(journal):
    return InMemoryStore(journal)


@pytest.fixture()
def identity():
    return FakeIdentity({1: UserProfile(id=1, email="a@x.com", display_name="Ann")})


@pytest.fixture()
def catalog():
    return FakeCatalog(
        {2: RestaurantProfile(id=2, name="Joe's", owner_email="o@x.com", address="1 Main St")}
    )


@pytest.fixture()
def payments():
    return FakePayments()


@pytest.fixture()
def publisher(journal):
    return RecordingPublisher(journal)


@pytest.fixture()
def orchestrator(store, identity, catalog, payments, publisher):
    return OrderOrchestrator(store, identity, catalog, payments, publisher)


@pytest.fixture()
def order_payload() -> dict:
    return {
        "userId": 1,
        "restaurantId": 2,
        "deliveryAddress": "42 Elm St",
        "items": [
            {"menuItemId": 5, "menuItemName": "Burger", "quantity": 2, "price": "9.00"},
        ],
        "paymentMethodId": "tok_1",
    }
