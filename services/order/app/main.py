"""
Order Service — FastAPI エントリーポイント

ピザ注文の Saga オーケストレーターを HTTP API として公開する。
注文ごとに Kitchen Service と Delivery Service を順に呼び出し、
結果を 1 つの確認レスポンスにまとめて返す。

┌────────┐  POST /order  ┌───────────────┐     ┌──────────────────┐
│ Client │──────────────▶│ Order Service │────▶│ Kitchen Service  │
│        │               │  (Saga)       │────▶│ Delivery Service │
└────────┘               └───────┬───────┘     └──────────────────┘
                                 │ saga:<orderId> / saga_events
                          ┌──────▼──────┐
                          │    Redis    │
                          └─────────────┘
"""

import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import OrchestratorConfig
from .errors import OrderFailed
from .ids import generate_order_id
from .models import (
    FailureReason,
    OrderConfirmation,
    OrderRequest,
    OrderStatus,
    SagaRecord,
)
from .orchestrator import PizzaOrderSagaOrchestrator
from .tracker import SagaTracker, TrackerUnavailable

config = OrchestratorConfig.from_env()

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

http_client: httpx.AsyncClient | None = None
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global http_client, redis_pool
    http_client = httpx.AsyncClient()
    if config.redis_url:
        redis_pool = aioredis.from_url(
            config.redis_url,
            decode_responses=True,
            socket_timeout=config.redis_timeout,
            socket_connect_timeout=config.redis_timeout,
        )
    logger.info("Kitchen Service URL: %s", config.kitchen_service_url)
    logger.info("Delivery Service URL: %s", config.delivery_service_url)
    yield
    await http_client.aclose()
    if redis_pool is not None:
        await redis_pool.aclose()


app = FastAPI(title="Order Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderFailed)
async def order_failed_handler(request: Request, exc: OrderFailed) -> JSONResponse:
    """Saga の失敗を {error, reason, orderId, details?} で返す。"""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body().model_dump(by_alias=True, exclude_none=True, mode="json"),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    POST /order の不正なリクエストにも注文 ID 付きのエラー本文を返す。

    Saga は開始しないので協調サービスは呼ばれない。他のパスは FastAPI 既定の 422。
    """
    if request.url.path != "/order":
        return await request_validation_exception_handler(request, exc)
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    failure = OrderFailed(
        FailureReason.INVALID_REQUEST,
        generate_order_id(),
        "Invalid order request",
        details,
    )
    logger.warning("Rejected order %s: %s", failure.order_id, details)
    return await order_failed_handler(request, failure)


# ── Dependencies ─────────────────────────────────


def get_tracker() -> SagaTracker:
    return SagaTracker(
        redis_pool, config.saga_retention_seconds, timeout=config.redis_timeout
    )


def get_orchestrator(
    tracker: SagaTracker = Depends(get_tracker),
) -> PizzaOrderSagaOrchestrator:
    return PizzaOrderSagaOrchestrator(config, http_client, tracker)


# ── Endpoints ────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "order-service"}


@app.post("/order", response_model=OrderConfirmation)
async def place_order(
    req: OrderRequest,
    orchestrator: PizzaOrderSagaOrchestrator = Depends(get_orchestrator),
):
    """
    ピザを注文する。

    空き確認 → 調理 → ドライバー割り当て の Saga を実行し、
    調理時間と配達時間を合算した確認レスポンスを返す。
    """
    return await orchestrator.place_order(req)


@app.get("/order/{order_id}", response_model=OrderStatus)
async def get_order_status(order_id: str):
    """
    注文ステータスを返す。

    状態を保持していないため、常に in-progress を返す。
    実際の進捗は /order/{order_id}/saga を参照。
    """
    logger.info("Status check for order %s", order_id)
    return OrderStatus(order_id=order_id)


@app.get("/order/{order_id}/saga", response_model=SagaRecord)
async def get_order_saga(
    order_id: str,
    tracker: SagaTracker = Depends(get_tracker),
):
    """保存期間内の Saga 記録（最新状態とステップ履歴）を返す。"""
    try:
        record = await tracker.load(order_id)
    except TrackerUnavailable:
        raise HTTPException(503, "Saga tracking is unavailable") from None
    if record is None:
        raise HTTPException(404, "Saga record not found")
    return record
