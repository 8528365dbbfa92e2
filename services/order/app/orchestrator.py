"""
Saga Orchestrator — ピザ注文 Saga

Saga パターン（オーケストレーション型）:
  中央のオーケストレーターが各協調サービスへの呼び出し順序を制御する。
  どのステップも失敗した時点で Saga を打ち切り、理由をそのまま返す。

  フロー:
  ┌─────────────────────────────────────────────────────────┐
  │  1. Kitchen Service に空き状況を確認                     │
  │     └─ 空きなし / 失敗 → KitchenUnavailable (503)       │
  │  2. Kitchen Service に調理を依頼                         │
  │     └─ 失敗 → DownstreamError (500)                     │
  │  3. Delivery Service にドライバー割り当てを依頼          │
  │     ├─ 503 → NoDriversAvailable (503)                   │
  │     └─ 失敗 → DownstreamError (500)                     │
  │  4. 調理時間 + 配達時間を合算して注文を確定              │
  └─────────────────────────────────────────────────────────┘

  ピザができる前にドライバーを手配しないよう、3 ステップは必ず直列に実行する。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, TypeVar

import httpx

from .config import OrchestratorConfig
from .downstream import DeliveryClient, DownstreamClient, KitchenClient
from .errors import CollaboratorError, OrderFailed
from .ids import generate_order_id
from .models import (
    FailureReason,
    KitchenOutcome,
    Order,
    OrderConfirmation,
    OrderRequest,
    SagaState,
    SagaStep,
)
from .tracker import SagaTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

KITCHEN_UNAVAILABLE_MESSAGE = "Kitchen is currently unavailable"
NO_DRIVERS_MESSAGE = "No drivers available"
DOWNSTREAM_ERROR_MESSAGE = "Failed to process order"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PizzaOrderSagaOrchestrator:
    """ピザ注文 Saga のオーケストレーター"""

    def __init__(
        self,
        config: OrchestratorConfig,
        http: httpx.AsyncClient,
        tracker: SagaTracker,
    ):
        downstream = DownstreamClient(http)
        self.kitchen = KitchenClient(
            downstream, config.kitchen_service_url, config.downstream_timeout
        )
        self.delivery = DeliveryClient(
            downstream, config.delivery_service_url, config.downstream_timeout
        )
        self.tracker = tracker
        self.order_deadline = config.order_deadline

    async def place_order(self, request: OrderRequest) -> OrderConfirmation:
        """
        注文 ID を採番して Saga を実行する。

        成功時は OrderConfirmation を返し、失敗時は OrderFailed を送出する。
        想定外の例外も OrderFailed(DownstreamError) に変換されるため、
        呼び出し側は必ずレスポンスを返せる。
        """
        order = Order(
            id=generate_order_id(),
            pizza_type=request.pizza_type,
            size=request.size,
            customer_name=request.customer_name,
        )
        logger.info(
            "Order received: %s - %s %s for %s",
            order.id, order.size.value, order.pizza_type, order.customer_name,
        )
        saga_log: list[SagaStep] = []
        deadline = asyncio.get_running_loop().time() + self.order_deadline

        try:
            confirmation = await self._run(order, saga_log, deadline)
        except OrderFailed as failure:
            logger.warning("Order %s failed: %s", order.id, failure)
            await self._finish_failed(order.id, saga_log)
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Order %s exceeded the %.1fs deadline", order.id, self.order_deadline
            )
            details = f"Order deadline of {self.order_deadline}s exceeded"
            _fail_current_step(saga_log, details)
            await self._finish_failed(order.id, saga_log)
            raise OrderFailed(
                FailureReason.DOWNSTREAM_ERROR,
                order.id,
                DOWNSTREAM_ERROR_MESSAGE,
                details,
            ) from None
        except Exception as e:
            logger.exception("Error processing order %s", order.id)
            _fail_current_step(saga_log, str(e))
            await self._finish_failed(order.id, saga_log)
            raise OrderFailed(
                FailureReason.DOWNSTREAM_ERROR,
                order.id,
                DOWNSTREAM_ERROR_MESSAGE,
                str(e),
            ) from e

        logger.info("Order %s completed successfully", order.id)
        await self.tracker.record(order.id, SagaState.CONFIRMED, saga_log)
        await self.tracker.publish("SagaCompleted", order.id, saga_log)
        return confirmation

    async def _run(
        self, order: Order, saga_log: list[SagaStep], deadline: float
    ) -> OrderConfirmation:
        # ── Step 1: キッチンの空き状況を確認 ──────────
        step = await self._begin(
            order.id, saga_log, 1, "CheckAvailability", SagaState.CHECKING_AVAILABILITY
        )
        try:
            available = await _before(deadline, self.kitchen.check_availability(order))
        except CollaboratorError as e:
            step.status, step.error = "FAILED", str(e)
            raise OrderFailed(
                FailureReason.KITCHEN_UNAVAILABLE,
                order.id,
                KITCHEN_UNAVAILABLE_MESSAGE,
                str(e),
            ) from e
        if not available:
            step.status, step.error = "FAILED", "Kitchen reported unavailable"
            raise OrderFailed(
                FailureReason.KITCHEN_UNAVAILABLE,
                order.id,
                KITCHEN_UNAVAILABLE_MESSAGE,
            )
        step.status = "COMPLETED"

        # ── Step 2: 調理 ───────────────────────────────
        step = await self._begin(order.id, saga_log, 2, "Cook", SagaState.COOKING)
        try:
            cooking_time = await _before(deadline, self.kitchen.cook(order))
        except CollaboratorError as e:
            step.status, step.error = "FAILED", str(e)
            raise OrderFailed(
                FailureReason.DOWNSTREAM_ERROR,
                order.id,
                DOWNSTREAM_ERROR_MESSAGE,
                str(e),
            ) from e
        kitchen = KitchenOutcome(available=True, cooking_time_minutes=cooking_time)
        step.status = "COMPLETED"

        # ── Step 3: ドライバー割り当て ─────────────────
        step = await self._begin(
            order.id, saga_log, 3, "AssignDriver", SagaState.ASSIGNING_DRIVER
        )
        try:
            delivery = await _before(deadline, self.delivery.assign_driver(order))
        except CollaboratorError as e:
            step.status, step.error = "FAILED", str(e)
            raise OrderFailed(
                FailureReason.DOWNSTREAM_ERROR,
                order.id,
                DOWNSTREAM_ERROR_MESSAGE,
                str(e),
            ) from e
        if delivery is None:
            step.status, step.error = "FAILED", "No drivers available"
            raise OrderFailed(
                FailureReason.NO_DRIVERS_AVAILABLE,
                order.id,
                NO_DRIVERS_MESSAGE,
                "All drivers are currently busy. Please try again later.",
            )
        step.status = "COMPLETED"
        logger.info(
            "Driver %s (%.1f stars, %.1fkm) assigned to order %s",
            delivery.driver_name, delivery.driver_rating, delivery.distance_km,
            order.id,
        )

        # ── Step 4: 集約して確定 ───────────────────────
        estimated_time = (
            kitchen.cooking_time_minutes + delivery.estimated_delivery_minutes
        )
        return OrderConfirmation(
            order_id=order.id,
            status="confirmed",
            pizza_type=order.pizza_type,
            size=order.size,
            customer_name=order.customer_name,
            estimated_time=estimated_time,
            driver=delivery.driver_name,
            message=(
                f"Your {order.size.value} {order.pizza_type} pizza will be "
                f"delivered in {estimated_time} minutes!"
            ),
        )

    async def _begin(
        self,
        order_id: str,
        saga_log: list[SagaStep],
        number: int,
        action: str,
        state: SagaState,
    ) -> SagaStep:
        logger.info("Order %s: %s", order_id, action)
        step = SagaStep(step=number, action=action, status="EXECUTING", timestamp=_now())
        saga_log.append(step)
        await self.tracker.record(order_id, state, saga_log)
        return step

    async def _finish_failed(self, order_id: str, saga_log: list[SagaStep]) -> None:
        await self.tracker.record(order_id, SagaState.FAILED, saga_log)
        await self.tracker.publish("SagaFailed", order_id, saga_log)


async def _before(deadline: float, call: Awaitable[T]) -> T:
    """
    協調サービス呼び出しを注文全体の締め切りまでに制限する。

    締め切りの対象は協調サービスの呼び出しだけ。
    トラッカーへの書き込み時間は含めない（SagaTracker 側で個別に制限する）。
    """
    remaining = max(deadline - asyncio.get_running_loop().time(), 0)
    return await asyncio.wait_for(call, timeout=remaining)


def _fail_current_step(saga_log: list[SagaStep], error: str) -> None:
    if saga_log and saga_log[-1].status == "EXECUTING":
        saga_log[-1].status = "FAILED"
        saga_log[-1].error = error
