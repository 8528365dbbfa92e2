"""
Pytest configuration and shared fixtures for the order service tests.

Kitchen / Delivery collaborators are faked with httpx.MockTransport,
Redis with a small in-memory stand-in.
"""
import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from app.config import OrchestratorConfig
from app.orchestrator import PizzaOrderSagaOrchestrator
from app.tracker import SagaTracker

KITCHEN_URL = "http://kitchen.test"
DELIVERY_URL = "http://delivery.test"


# ── Fake Collaborators ────────────────────────────────────────────────


class FakeCollaborators:
    """
    Kitchen + Delivery services behind one MockTransport handler.

    Attributes tweak the canned behaviour per test; every request is
    recorded in `calls` as (host, path, json payload).
    """

    def __init__(self):
        self.calls: list[tuple[str, str, dict]] = []
        self.available = True
        self.cooking_time = 20
        self.delivery_minutes = 13
        self.no_drivers = False
        self.unreachable: set[str] = set()
        self.timeouts: set[str] = set()
        self.status_overrides: dict[str, int] = {}
        self.raw_bodies: dict[str, str] = {}
        self.delays: dict[str, float] = {}
        self.no_driver_customers: set[str] = set()
        self.timeouts_seen: dict[str, dict] = {}

    @property
    def paths(self) -> list[str]:
        return [path for _, path, _ in self.calls]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        payload = json.loads(request.content)
        self.calls.append((request.url.host, path, payload))
        self.timeouts_seen[path] = request.extensions.get("timeout")

        if path in self.delays:
            await asyncio.sleep(self.delays[path])
        if path in self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)
        if path in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        if path in self.status_overrides:
            return httpx.Response(
                self.status_overrides[path], json={"error": "Internal failure"}
            )
        if path in self.raw_bodies:
            return httpx.Response(200, text=self.raw_bodies[path])

        if path == "/check-availability":
            return httpx.Response(
                200,
                json={
                    "available": self.available,
                    "orderId": payload["orderId"],
                    "message": "Kitchen is ready to cook!",
                },
            )
        if path == "/cook":
            return httpx.Response(
                200,
                json={
                    "orderId": payload["orderId"],
                    "status": "cooked",
                    "pizzaType": payload["pizzaType"],
                    "size": payload["size"],
                    "cookingTime": self.cooking_time,
                    "ovenTemperature": 450,
                },
            )
        if path == "/assign-driver":
            if self.no_drivers or payload["customerName"] in self.no_driver_customers:
                return httpx.Response(
                    503,
                    json={
                        "error": "No drivers available",
                        "orderId": payload["orderId"],
                        "message": "All drivers are currently busy. Please try again later.",
                    },
                )
            return httpx.Response(
                200,
                json={
                    "orderId": payload["orderId"],
                    "driverName": "Peach",
                    "driverRating": 5.0,
                    "distance": 1.5,
                    "estimatedDeliveryTime": self.delivery_minutes,
                    "status": "driver-assigned",
                },
            )
        return httpx.Response(404, json={"error": "Not found"})


# ── Fake Redis ────────────────────────────────────────────────────────


class InMemoryRedis:
    """The handful of redis.asyncio.Redis calls SagaTracker makes."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.published: list[tuple[str, dict]] = []

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def get(self, key):
        return self.store.get(key)

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def collaborators() -> FakeCollaborators:
    return FakeCollaborators()


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def tracker(fake_redis: InMemoryRedis) -> SagaTracker:
    return SagaTracker(fake_redis, retention_seconds=600)


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(
        kitchen_service_url=KITCHEN_URL,
        delivery_service_url=DELIVERY_URL,
        downstream_timeout=1.0,
        order_deadline=2.0,
    )


@pytest_asyncio.fixture
async def http_client(collaborators: FakeCollaborators):
    transport = httpx.MockTransport(collaborators.handler)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


@pytest.fixture
def orchestrator(config, http_client, tracker) -> PizzaOrderSagaOrchestrator:
    return PizzaOrderSagaOrchestrator(config, http_client, tracker)


class SlowRedis(InMemoryRedis):
    """Redis that answers, but only after `delay` seconds per command."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def set(self, key, value, ex=None):
        await asyncio.sleep(self.delay)
        return await super().set(key, value, ex=ex)

    async def get(self, key):
        await asyncio.sleep(self.delay)
        return await super().get(key)

    async def publish(self, channel, message):
        await asyncio.sleep(self.delay)
        return await super().publish(channel, message)
