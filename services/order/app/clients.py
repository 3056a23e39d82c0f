"""
Order Service: 周辺サービスのクライアント

IdentityClient  GET  /api/users/{id}
CatalogClient   GET  /api/restaurants/{id}
PaymentClient   POST /api/payments

照会は 404 のとき None を返す。オーケストレーターは「存在しない」と
「問い合わせられなかった」を区別できる。それ以外の HTTP エラーや通信失敗、
タイムアウトは DependencyUnavailable を送出する。ここではリトライしない。
"""

import logging
from decimal import Decimal

import httpx
from pydantic import ValidationError

from .errors import DependencyUnavailable
from .models import PaymentResult, RestaurantProfile, UserProfile

logger = logging.getLogger(__name__)


class _ServiceClient:
    name = "service"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _get_profile(self, path: str, model):
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}{path}")
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                return model.model_validate(resp.json())
        except httpx.HTTPError as e:
            logger.error("Error calling %s at %s: %s", self.name, path, e)
            raise DependencyUnavailable(self.name, str(e) or type(e).__name__) from e
        except (ValueError, ValidationError) as e:
            logger.error("Malformed response from %s at %s: %s", self.name, path, e)
            raise DependencyUnavailable(self.name, f"malformed response: {e}") from e


class IdentityClient(_ServiceClient):
    name = "user-service"

    async def get_user(self, user_id: int) -> UserProfile | None:
        logger.info("Fetching user details for ID: %s", user_id)
        return await self._get_profile(f"/api/users/{user_id}", UserProfile)


class CatalogClient(_ServiceClient):
    name = "restaurant-service"

    async def get_restaurant(self, restaurant_id: int) -> RestaurantProfile | None:
        logger.info("Fetching restaurant details for ID: %s", restaurant_id)
        return await self._get_profile(
            f"/api/restaurants/{restaurant_id}", RestaurantProfile
        )


class PaymentClient(_ServiceClient):
    name = "payment-service"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)

    async def charge(
        self,
        order_id: int,
        user_id: int,
        amount: Decimal,
        payment_method_id: str,
        currency: str = "usd",
    ) -> PaymentResult:
        """
        課金を依頼する。カード拒否は status FAILED の通常の PaymentResult
        として返し、解釈できない応答のときだけ例外を送出する。
        """
        logger.info("Calling payment service to process payment for order: %s", order_id)
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/api/payments",
                    json={
                        "orderId": order_id,
                        "userId": user_id,
                        "amount": str(amount),
                        "paymentMethodId": payment_method_id,
                        "currency": currency,
                    },
                )
                resp.raise_for_status()
                return PaymentResult.model_validate(resp.json())
        except httpx.HTTPError as e:
            logger.error("Error calling payment service: %s", e)
            raise DependencyUnavailable(self.name, str(e) or type(e).__name__) from e
        except (ValueError, ValidationError) as e:
            logger.error("Malformed response from payment service: %s", e)
            raise DependencyUnavailable(self.name, f"malformed response: {e}") from e
