"""
Order Service — Saga トラッカー

Saga の遷移ごとに最新状態を Redis に保存し（TTL 付き）、
完了・失敗時には saga_events チャネルにイベントを発行する。

注意: トラッキングは観測用。Redis が落ちていても遅くても注文処理の結果は変わらない。
書き込みは 1 回ごとに timeout 秒で打ち切り、失敗はログに残すだけにする。
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .models import SagaRecord, SagaState, SagaStep

logger = logging.getLogger(__name__)

SAGA_EVENTS_CHANNEL = "saga_events"


class TrackerUnavailable(Exception):
    """Saga 記録を読み出せない（Redis エラー・タイムアウト）"""


def _key(order_id: str) -> str:
    return f"saga:{order_id}"


class SagaTracker:
    def __init__(
        self,
        redis: aioredis.Redis | None,
        retention_seconds: int,
        timeout: float = 0.5,
    ):
        self.redis = redis
        self.retention_seconds = retention_seconds
        self.timeout = timeout

    async def record(
        self,
        order_id: str,
        state: SagaState,
        saga_log: list[SagaStep],
    ) -> None:
        """最新の Saga 状態を保存する。保存期間を過ぎると消える。"""
        if self.redis is None:
            return
        record = SagaRecord(order_id=order_id, state=state, saga_log=saga_log)
        try:
            await asyncio.wait_for(
                self.redis.set(
                    _key(order_id),
                    record.model_dump_json(by_alias=True),
                    ex=self.retention_seconds,
                ),
                timeout=self.timeout,
            )
        except (RedisError, asyncio.TimeoutError):
            logger.warning(
                "Failed to record saga state %s for order %s",
                state.value, order_id, exc_info=True,
            )

    async def publish(
        self,
        event_type: str,
        order_id: str,
        saga_log: list[SagaStep],
    ) -> None:
        """Saga のイベントを Redis に発行する。"""
        if self.redis is None:
            return
        message = json.dumps(
            {
                "event_type": event_type,
                "order_id": order_id,
                "saga_log": [s.model_dump(exclude_none=True) for s in saga_log],
            },
            default=str,
        )
        try:
            await asyncio.wait_for(
                self.redis.publish(SAGA_EVENTS_CHANNEL, message),
                timeout=self.timeout,
            )
        except (RedisError, asyncio.TimeoutError):
            logger.warning(
                "Failed to publish %s for order %s", event_type, order_id,
                exc_info=True,
            )

    async def load(self, order_id: str) -> SagaRecord | None:
        """保存済みの Saga 記録を返す。Redis に届かなければ TrackerUnavailable。"""
        if self.redis is None:
            return None
        try:
            raw = await asyncio.wait_for(
                self.redis.get(_key(order_id)), timeout=self.timeout
            )
        except (RedisError, asyncio.TimeoutError) as e:
            logger.warning("Failed to load saga record for order %s", order_id,
                           exc_info=True)
            raise TrackerUnavailable(str(e)) from e
        if raw is None:
            return None
        return SagaRecord.model_validate_json(raw)
