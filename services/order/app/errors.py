"""
Order Service — エラー分類

2 層に分ける:
  - CollaboratorError: 協調サービス 1 回の呼び出しの失敗（トランスポート層）
  - OrderFailed: Saga 全体の失敗理由（ビジネス層、HTTP ステータスに対応）
"""

from typing import Any

from .models import FailureReason, OrderErrorBody


class CollaboratorError(Exception):
    """協調サービス呼び出しの失敗"""

    def __init__(self, collaborator: str, endpoint: str, message: str):
        super().__init__(f"{collaborator} {endpoint}: {message}")
        self.collaborator = collaborator
        self.endpoint = endpoint


class CollaboratorRejected(CollaboratorError):
    """2xx 以外のレスポンスが返った（意味的な拒否）"""

    def __init__(self, collaborator: str, endpoint: str, status_code: int, body: Any):
        super().__init__(
            collaborator, endpoint, f"rejected with HTTP {status_code}: {body}"
        )
        self.status_code = status_code
        self.body = body


class CollaboratorUnreachable(CollaboratorError):
    """接続失敗・タイムアウト"""

    def __init__(self, collaborator: str, endpoint: str, cause: Exception):
        super().__init__(
            collaborator, endpoint, f"unreachable ({type(cause).__name__}: {cause})"
        )
        self.cause = cause


class MalformedResponse(CollaboratorError):
    """2xx だが本文が期待した JSON オブジェクトではない"""


_STATUS_CODES = {
    FailureReason.KITCHEN_UNAVAILABLE: 503,
    FailureReason.NO_DRIVERS_AVAILABLE: 503,
    FailureReason.DOWNSTREAM_ERROR: 500,
    FailureReason.INVALID_REQUEST: 422,
}


class OrderFailed(Exception):
    """Saga が Failed に遷移した。API 境界でエラーレスポンスに変換される。"""

    def __init__(
        self,
        reason: FailureReason,
        order_id: str,
        error: str,
        details: str | None = None,
    ):
        super().__init__(f"{reason.value}: {error}")
        self.reason = reason
        self.order_id = order_id
        self.error = error
        self.details = details

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.reason]

    def to_body(self) -> OrderErrorBody:
        return OrderErrorBody(
            error=self.error,
            reason=self.reason,
            order_id=self.order_id,
            details=self.details,
        )
