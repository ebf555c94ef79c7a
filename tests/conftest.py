"""
Shared pytest fixtures.

No test talks to the network: upstream APIs are replaced with
httpx.MockTransport handlers and storage is in memory (or a temporary
SQLite file).
"""

import asyncio

import httpx
import pytest

from src.audit import AuditLogger
from src.config import get_settings
from src.services.auth import StaticTokenAuthProvider
from src.services.exchange import ExchangeRateService, MarketDataService
from src.services.storage import InMemoryAuditStorage, InMemoryTransactionStorage
from src.orchestrator import TransactionIngestionService


TEST_TOKEN = "test-token"
TEST_USER_ID = "user-1"
OTHER_TOKEN = "other-token"
OTHER_USER_ID = "user-2"
TEST_SALT = "test-salt"


def run(coro):
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run(coro)


def rates_handler(rates_by_base: dict[str, dict[str, float]], calls: list | None = None):
    """Mock exchange-rate API: GET /latest/{base} -> {"rates": {...}}."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request.url.path)
        base = request.url.path.rsplit("/", 1)[-1]
        if base not in rates_by_base:
            return httpx.Response(404, json={"error": "unknown base"})
        return httpx.Response(
            200,
            json={"base": base, "date": "2024-12-01", "rates": rates_by_base[base]},
        )

    return handler


def failing_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class RecordingAuditLogger(AuditLogger):
    """AuditLogger that also keeps every event it logs."""

    def __init__(self, storage=None):
        super().__init__(storage)
        self.events = []

    async def log(self, event):
        self.events.append(event)
        await super().log(event)

    def event_types(self) -> list[str]:
        return [event.event_type.value for event in self.events]


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings for every test."""
    monkeypatch.setenv("IP_HASH_SALT", TEST_SALT)
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("AUTH_PROVIDER", "static")
    monkeypatch.setenv("AUTH_STATIC_TOKENS", f"{TEST_TOKEN}:{TEST_USER_ID},{OTHER_TOKEN}:{OTHER_USER_ID}")
    monkeypatch.setenv("BASE_CURRENCY", "INR")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def auth_provider():
    return StaticTokenAuthProvider({TEST_TOKEN: TEST_USER_ID, OTHER_TOKEN: OTHER_USER_ID})


@pytest.fixture
def rate_calls():
    return []


@pytest.fixture
def exchange_service(rate_calls):
    client = httpx.AsyncClient(transport=httpx.MockTransport(rates_handler(
        {
            "USD": {"INR": 83.5, "EUR": 0.92, "USD": 1},
            "EUR": {"INR": 90.25, "USD": 1.09},
        },
        calls=rate_calls,
    )))
    return ExchangeRateService(client=client, api_url="https://rates.test/v4")


@pytest.fixture
def broken_exchange_service():
    client = httpx.AsyncClient(transport=httpx.MockTransport(failing_handler))
    return ExchangeRateService(client=client, api_url="https://rates.test/v4")


@pytest.fixture
def market_service():
    def handler(request: httpx.Request) -> httpx.Response:
        coin = request.url.params.get("ids")
        quotes = {
            "bitcoin": {"inr": 5_000_000.0, "usd": 60_000.0},
            "tether": {"usd": 1.0},
        }
        if coin == "broken":
            return httpx.Response(503)
        return httpx.Response(200, json={coin: quotes[coin]} if coin in quotes else {})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketDataService(client=client, api_url="https://prices.test/api/v3", usd_to_inr_rate=83.0)


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ingestion_service(transaction_storage, auth_provider, exchange_service, audit_logger):
    return TransactionIngestionService(
        transaction_storage=transaction_storage,
        auth_provider=auth_provider,
        exchange_service=exchange_service,
        audit_logger=audit_logger,
        ip_hash_salt=TEST_SALT,
    )
