"""
Order Service — 協調サービスクライアント

Kitchen Service / Delivery Service への HTTP 呼び出しをラップする。

  - タイムアウトは呼び出しごとに必須
  - リトライなし・サーキットブレーカーなし（各呼び出しは 1 回だけ）
  - httpx の例外は CollaboratorError 系に正規化する

  ┌───────────────┐  /check-availability  ┌─────────────────┐
  │               │──────────────────────▶│ Kitchen Service │
  │ Order Service │  /cook                │                 │
  │               │──────────────────────▶└─────────────────┘
  │               │  /assign-driver       ┌──────────────────┐
  │               │──────────────────────▶│ Delivery Service │
  └───────────────┘                       └──────────────────┘
"""

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import (
    CollaboratorRejected,
    CollaboratorUnreachable,
    MalformedResponse,
)
from .models import AvailabilityResponse, CookResponse, DeliveryOutcome, Order

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class Collaborator(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str


class DownstreamClient:
    """共有の httpx.AsyncClient を使って協調サービスを呼び出す。"""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def call(
        self,
        collaborator: Collaborator,
        endpoint: str,
        payload: dict,
        timeout: float,
    ) -> dict:
        """
        協調サービスに POST し、デコード済みの JSON を返す。

        2xx 以外 → CollaboratorRejected
        接続失敗・タイムアウト → CollaboratorUnreachable
        本文が JSON オブジェクトでない → MalformedResponse
        """
        url = f"{collaborator.base_url}{endpoint}"
        order_id = payload.get("orderId")
        try:
            resp = await self.http.post(url, json=payload, timeout=timeout)
        except httpx.RequestError as e:
            logger.warning(
                "%s %s unreachable for order %s: %r",
                collaborator.name, endpoint, order_id, e,
            )
            raise CollaboratorUnreachable(collaborator.name, endpoint, e) from e

        if not resp.is_success:
            body = _decode_body(resp)
            logger.warning(
                "%s %s rejected order %s with HTTP %s",
                collaborator.name, endpoint, order_id, resp.status_code,
            )
            raise CollaboratorRejected(
                collaborator.name, endpoint, resp.status_code, body
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedResponse(
                collaborator.name, endpoint, "response body is not JSON"
            ) from e
        if not isinstance(body, dict):
            raise MalformedResponse(
                collaborator.name, endpoint, "response body is not a JSON object"
            )

        logger.info(
            "%s %s answered HTTP %s for order %s",
            collaborator.name, endpoint, resp.status_code, order_id,
        )
        return body

    async def call_as(
        self,
        model: type[ResponseModel],
        collaborator: Collaborator,
        endpoint: str,
        payload: dict,
        timeout: float,
    ) -> ResponseModel:
        """call() の結果を pydantic モデルとして検証して返す。"""
        body = await self.call(collaborator, endpoint, payload, timeout)
        try:
            return model.model_validate(body)
        except ValidationError as e:
            raise MalformedResponse(
                collaborator.name, endpoint, f"unexpected response shape: {e}"
            ) from e


def _decode_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


# ── 型付きラッパー ───────────────────────────────


class KitchenClient:
    def __init__(self, downstream: DownstreamClient, base_url: str, timeout: float):
        self.downstream = downstream
        self.collaborator = Collaborator(name="kitchen-service", base_url=base_url)
        self.timeout = timeout

    def _payload(self, order: Order) -> dict:
        return {
            "orderId": order.id,
            "pizzaType": order.pizza_type,
            "size": order.size.value,
        }

    async def check_availability(self, order: Order) -> bool:
        result = await self.downstream.call_as(
            AvailabilityResponse,
            self.collaborator,
            "/check-availability",
            self._payload(order),
            self.timeout,
        )
        return result.available

    async def cook(self, order: Order) -> int:
        """調理を依頼し、調理時間（分）を返す。"""
        result = await self.downstream.call_as(
            CookResponse,
            self.collaborator,
            "/cook",
            self._payload(order),
            self.timeout,
        )
        return result.cooking_time


class DeliveryClient:
    def __init__(self, downstream: DownstreamClient, base_url: str, timeout: float):
        self.downstream = downstream
        self.collaborator = Collaborator(name="delivery-service", base_url=base_url)
        self.timeout = timeout

    async def assign_driver(self, order: Order) -> DeliveryOutcome | None:
        """
        ドライバーを割り当てる。

        Delivery Service が 503 を返した場合（空きドライバーなし）は None。
        それ以外の失敗は CollaboratorError のまま伝播する。
        """
        try:
            return await self.downstream.call_as(
                DeliveryOutcome,
                self.collaborator,
                "/assign-driver",
                {"orderId": order.id, "customerName": order.customer_name},
                self.timeout,
            )
        except CollaboratorRejected as e:
            if e.status_code == 503:
                return None
            raise
