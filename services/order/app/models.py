"""
Order Service — ワイヤーモデル

協調サービス (Kitchen / Delivery) と API 利用者との間でやり取りする
JSON の形を定義する。JSON 側は camelCase、Python 側は snake_case。
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PizzaSize(str, Enum):
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"


class FailureReason(str, Enum):
    KITCHEN_UNAVAILABLE = "KitchenUnavailable"
    NO_DRIVERS_AVAILABLE = "NoDriversAvailable"
    DOWNSTREAM_ERROR = "DownstreamError"
    INVALID_REQUEST = "InvalidRequest"


class SagaState(str, Enum):
    CHECKING_AVAILABILITY = "CheckingAvailability"
    COOKING = "Cooking"
    ASSIGNING_DRIVER = "AssigningDriver"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"


# ── リクエスト / ドメイン ─────────────────────────


class OrderRequest(CamelModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    pizza_type: str
    size: PizzaSize
    customer_name: str


class Order(CamelModel):
    """リクエスト単位の注文。永続化しない。"""

    model_config = ConfigDict(frozen=True)

    id: str
    pizza_type: str
    size: PizzaSize
    customer_name: str


# ── 協調サービスの結果 ────────────────────────────


class AvailabilityResponse(CamelModel):
    """Kitchen Service の /check-availability レスポンス"""

    available: bool
    message: str = ""


class CookResponse(CamelModel):
    """Kitchen Service の /cook レスポンス"""

    status: str = "cooked"
    cooking_time: int
    oven_temperature: int | None = None


class KitchenOutcome(CamelModel):
    available: bool
    cooking_time_minutes: int


class DeliveryOutcome(BaseModel):
    """Delivery Service の /assign-driver 成功レスポンス"""

    model_config = ConfigDict(populate_by_name=True)

    driver_name: str = Field(alias="driverName")
    driver_rating: float = Field(alias="driverRating")
    distance_km: float = Field(alias="distance")
    estimated_delivery_minutes: int = Field(alias="estimatedDeliveryTime")


# ── レスポンス ───────────────────────────────────


class OrderConfirmation(CamelModel):
    order_id: str
    status: str = "confirmed"
    pizza_type: str
    size: PizzaSize
    customer_name: str
    estimated_time: int
    driver: str
    message: str


class OrderErrorBody(CamelModel):
    error: str
    reason: FailureReason
    order_id: str
    details: str | None = None


class OrderStatus(CamelModel):
    order_id: str
    status: str = "in-progress"
    message: str = "Your pizza is being prepared"


class SagaStep(BaseModel):
    step: int
    action: str
    status: str
    timestamp: str
    error: str | None = None


class SagaRecord(CamelModel):
    order_id: str
    state: SagaState
    saga_log: list[SagaStep]
