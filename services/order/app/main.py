"""
Order Service: FastAPI エントリーポイント

注文オーケストレーターを HTTP で公開する。lifespan で DB エンジン、Redis
プール、各サービスのクライアントを一度だけ作り、OrderOrchestrator に組み立てて
app.state に置く。各ルートは get_orchestrator 依存関係経由で受け取る。
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from .clients import CatalogClient, IdentityClient, PaymentClient
from .config import Settings
from .errors import OrderServiceError, PaymentFailed
from .models import CreateOrderRequest, Order, UpdateStatusRequest
from .orchestrator import OrderOrchestrator
from .publisher import RedisEventPublisher
from .schema import create_schema
from .store import OrderStore

settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = create_async_engine(settings.database_url, echo=False)
    await create_schema(engine)
    redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)

    app.state.orchestrator = OrderOrchestrator(
        store=OrderStore(
            async_sessionmaker(engine, expire_on_commit=False),
            timeout=settings.store_timeout,
        ),
        identity=IdentityClient(settings.user_service_url, timeout=settings.lookup_timeout),
        catalog=CatalogClient(
            settings.restaurant_service_url, timeout=settings.lookup_timeout
        ),
        payments=PaymentClient(
            settings.payment_service_url, timeout=settings.payment_timeout
        ),
        publisher=RedisEventPublisher(
            redis_pool,
            channel=settings.events_channel,
            timeout=settings.publish_timeout,
        ),
        currency=settings.currency,
    )
    logger.info("Order service started")
    yield
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.orchestrator


@app.exception_handler(OrderServiceError)
async def handle_order_service_error(request: Request, exc: OrderServiceError):
    body = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": exc.status_code,
        "error": exc.title,
        "message": exc.message,
        "path": request.url.path,
    }
    if isinstance(exc, PaymentFailed) and exc.order_id is not None:
        body["orderId"] = exc.order_id
    return JSONResponse(status_code=exc.status_code, content=body)


# ── Commands ─────────────────────────────────────


@app.post("/api/orders", response_model=Order)
async def create_order(
    req: CreateOrderRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """注文作成 (決済手段があればそのまま課金まで進める)"""
    return await orchestrator.create_order(req)


@app.put("/api/orders/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: int,
    req: UpdateStatusRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """注文ステータスの更新 (終端状態の注文は 409)"""
    return await orchestrator.update_status(order_id, req.status)


@app.delete("/api/orders/{order_id}", response_model=Order)
async def cancel_order(
    order_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """注文キャンセル"""
    return await orchestrator.cancel_order(order_id)


# ── Queries ──────────────────────────────────────


@app.get("/api/orders/user/{user_id}", response_model=list[Order])
async def list_user_orders(
    user_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """指定ユーザーの注文を新しい順に取得"""
    return await orchestrator.list_orders_by_user(user_id)


@app.get("/api/orders/restaurant/{restaurant_id}", response_model=list[Order])
async def list_restaurant_orders(
    restaurant_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """指定レストランの注文を新しい順に取得"""
    return await orchestrator.list_orders_by_restaurant(restaurant_id)


@app.get("/api/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """指定注文を取得"""
    return await orchestrator.get_order(order_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
