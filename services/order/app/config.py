"""
Order Service — 設定

環境変数から一度だけ読み込み、イミュータブルな設定値として
オーケストレーターに渡す。グローバル変数を直接参照しないことで、
テスト時に協調サービスの URL を差し替えられるようにする。
"""

import os

from pydantic import BaseModel, ConfigDict, field_validator

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class OrchestratorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    kitchen_service_url: str = "http://localhost:3001"
    delivery_service_url: str = "http://localhost:3002"
    downstream_timeout: float = 3.0
    order_deadline: float = 10.0
    redis_url: str = "redis://localhost:6379"
    redis_timeout: float = 0.5
    saga_retention_seconds: int = 3600
    log_level: str = "INFO"

    @field_validator("kitchen_service_url", "delivery_service_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {value!r}"
            )
        return level

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """環境変数から設定を組み立てる。未設定の項目はデフォルト値。"""
        env = {
            "kitchen_service_url": os.environ.get("KITCHEN_SERVICE_URL"),
            "delivery_service_url": os.environ.get("DELIVERY_SERVICE_URL"),
            "downstream_timeout": os.environ.get("DOWNSTREAM_TIMEOUT_SECONDS"),
            "order_deadline": os.environ.get("ORDER_DEADLINE_SECONDS"),
            "redis_url": os.environ.get("REDIS_URL"),
            "redis_timeout": os.environ.get("REDIS_TIMEOUT_SECONDS"),
            "saga_retention_seconds": os.environ.get("SAGA_RETENTION_SECONDS"),
            "log_level": os.environ.get("LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in env.items() if v is not None})
