"""
Tests for the service layer: client identity, auth, exchange rates,
market data, suggestions, the audit logger and settings.

External APIs are replaced with httpx.MockTransport handlers.
"""

import hashlib

import httpx
import pytest

from src.audit import AuditLogger
from src.config import AppSettings, AuthSettings, get_settings
from src.models.transaction import LogEntry, Transaction
from src.queries import TransactionSuggestionService, build_suggestion
from src.services.auth import (
    StaticTokenAuthProvider,
    SupabaseAuthProvider,
    Unauthorized,
    build_client_context,
    create_auth_provider,
    extract_bearer_token,
    extract_client_ip,
    hash_client_ip,
)
from src.services.exchange import (
    ConversionDegraded,
    ExchangeRateService,
    MarketDataError,
    MarketDataService,
)

from conftest import TEST_SALT, TEST_TOKEN, TEST_USER_ID, RecordingAuditLogger, run


def make_transaction(**fields) -> Transaction:
    defaults = {
        "user_id": TEST_USER_ID,
        "amount": 100.0,
        "currency": "INR",
        "type": "expense",
        "ip_hash": "h",
        "category_id": "cat-food",
    }
    defaults.update(fields)
    return Transaction(**defaults)


class TestClientIdentity:
    """Tests for client address extraction and hashing."""

    def test_forwarded_for_first_entry_wins(self):
        headers = {"x-forwarded-for": "198.51.100.4, 10.0.0.1", "x-real-ip": "10.0.0.9"}
        assert extract_client_ip(headers) == "198.51.100.4"

    def test_real_ip_fallback(self):
        assert extract_client_ip({"X-Real-IP": " 10.0.0.9 "}) == "10.0.0.9"

    def test_unknown_when_no_headers(self):
        assert extract_client_ip({}) == "unknown"
        assert extract_client_ip({"x-forwarded-for": " , "}) == "unknown"

    def test_hash_is_salted_sha256(self):
        expected = hashlib.sha256(b"salt198.51.100.4").hexdigest()
        assert hash_client_ip("198.51.100.4", "salt") == expected

    def test_hash_is_deterministic_and_salt_dependent(self):
        first = hash_client_ip("198.51.100.4", TEST_SALT)
        assert first == hash_client_ip("198.51.100.4", TEST_SALT)
        assert first != hash_client_ip("198.51.100.4", "other-salt")
        assert "198.51.100.4" not in first

    def test_client_context_keeps_user_agent(self):
        context = build_client_context(
            {"X-Forwarded-For": "198.51.100.4", "User-Agent": "Mozilla/5.0"},
            TEST_SALT,
        )
        assert context.ip_hash == hash_client_ip("198.51.100.4", TEST_SALT)
        assert context.user_agent == "Mozilla/5.0"


class TestAuthProviders:
    """Tests for bearer token resolution."""

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_header(self, header):
        with pytest.raises(Unauthorized, match="Missing authorization header"):
            extract_bearer_token(header)

    def test_bearer_prefix_is_optional(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("bearer abc") == "abc"
        assert extract_bearer_token("abc") == "abc"

    @pytest.mark.parametrize("header", ["Bearer ", "Bearer", "bearer    "])
    def test_empty_bearer_rejected(self, header):
        with pytest.raises(Unauthorized):
            extract_bearer_token(header)

    def test_empty_bearer_never_reaches_upstream(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={"id": "uuid-1"})

        provider = SupabaseAuthProvider(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            base_url="https://project.auth.test",
            service_key="k",
        )
        with pytest.raises(Unauthorized):
            run(provider.authenticate("Bearer "))
        assert calls == []

    def test_static_provider(self, auth_provider):
        user = run(auth_provider.authenticate(f"Bearer {TEST_TOKEN}"))
        assert user.id == TEST_USER_ID
        with pytest.raises(Unauthorized):
            run(auth_provider.authenticate("Bearer wrong"))

    def test_static_provider_reads_settings(self):
        provider = StaticTokenAuthProvider()
        assert run(provider.get_user(TEST_TOKEN)).id == TEST_USER_ID

    def test_create_auth_provider_defaults_to_static(self):
        assert isinstance(create_auth_provider(), StaticTokenAuthProvider)

    def test_supabase_provider_resolves_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["apikey"] = request.headers.get("apikey")
            if request.headers.get("authorization") != "Bearer good":
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": "uuid-1", "email": "a@example.com"})

        provider = SupabaseAuthProvider(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            base_url="https://project.auth.test/",
            service_key="service-key",
        )

        user = run(provider.authenticate("Bearer good"))
        assert user.id == "uuid-1"
        assert user.email == "a@example.com"
        assert seen == {"path": "/auth/v1/user", "apikey": "service-key"}

        with pytest.raises(Unauthorized):
            run(provider.authenticate("Bearer bad"))

    def test_supabase_provider_network_error_is_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        provider = SupabaseAuthProvider(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            base_url="https://project.auth.test",
            service_key="k",
        )
        with pytest.raises(Unauthorized):
            run(provider.get_user("anything"))

    def test_supabase_network_error_is_audited(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        audit = RecordingAuditLogger()
        provider = SupabaseAuthProvider(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            base_url="https://project.auth.test",
            service_key="k",
            audit_logger=audit,
        )
        with pytest.raises(Unauthorized):
            run(provider.get_user("anything"))
        assert audit.event_types() == ["external_service_error"]
        assert audit.events[0].details == {"service": "auth"}

    def test_supabase_provider_requires_url(self):
        with pytest.raises(ValueError, match="AUTH_SUPABASE_URL"):
            SupabaseAuthProvider(base_url="", service_key="k")


class TestExchangeRateService:
    """Tests for rate lookups and the converter."""

    def test_get_rate(self, exchange_service):
        quote = run(exchange_service.get_rate("USD", "INR"))
        assert quote.rate == 83.5
        assert quote.last_updated == "2024-12-01"

    def test_convert_with_amount(self, exchange_service):
        conversion = run(exchange_service.convert("USD", "INR", 2))
        assert conversion.rate == 83.5
        assert conversion.converted_amount == pytest.approx(167.0)

    def test_convert_without_amount_returns_rate(self, exchange_service):
        conversion = run(exchange_service.convert("EUR", "USD"))
        assert conversion.converted_amount == 1.09
        assert conversion.amount is None

    def test_usdt_quoted_as_usd(self, exchange_service, rate_calls):
        conversion = run(exchange_service.convert("USDT", "INR", 10))
        assert conversion.from_currency == "USDT"
        assert conversion.converted_amount == pytest.approx(835.0)
        assert rate_calls == ["/v4/latest/USD"]

    def test_missing_target_rate(self, exchange_service):
        with pytest.raises(ConversionDegraded, match="Exchange rate not found for XYZ"):
            run(exchange_service.get_rate("USD", "XYZ"))

    def test_http_error_status(self, exchange_service):
        with pytest.raises(ConversionDegraded, match=r"HTTP 404"):
            run(exchange_service.get_rate("JPY", "INR"))

    def test_network_error(self, broken_exchange_service):
        with pytest.raises(ConversionDegraded) as exc_info:
            run(broken_exchange_service.get_rate("USD", "INR"))
        assert exc_info.value.from_currency == "USD"
        assert "Failed to fetch exchange rates" in exc_info.value.reason

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        service = ExchangeRateService(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            api_url="https://rates.test/v4",
        )
        with pytest.raises(ConversionDegraded, match="timed out"):
            run(service.get_rate("USD", "INR"))

    def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        service = ExchangeRateService(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            api_url="https://rates.test/v4",
        )
        with pytest.raises(ConversionDegraded, match="invalid JSON"):
            run(service.get_rate("USD", "INR"))

    @pytest.mark.parametrize("code", ["../x", "USD?a=1", "U/SD"])
    def test_malformed_code_never_requested(self, exchange_service, rate_calls, code):
        with pytest.raises(ConversionDegraded, match="Invalid currency code"):
            run(exchange_service.get_rate(code, "INR"))
        with pytest.raises(ConversionDegraded, match="Invalid currency code"):
            run(exchange_service.get_rate("USD", code))
        assert rate_calls == []


class TestMarketDataService:
    """Tests for crypto price lookups."""

    def test_inr_quote(self, market_service):
        prices = run(market_service.get_prices(["bitcoin"], "crypto"))
        assert prices.prices == {"bitcoin": 5_000_000.0}

    def test_usd_fallback(self, market_service):
        prices = run(market_service.get_prices(["tether"]))
        assert prices.prices["tether"] == pytest.approx(83.0)

    def test_failed_and_unknown_symbols_are_zero(self, market_service):
        prices = run(market_service.get_prices(["broken", "dogecoin", "Bitcoin"]))
        assert prices.prices == {"broken": 0.0, "dogecoin": 0.0, "Bitcoin": 5_000_000.0}

    def test_stock_market_unsupported(self, market_service):
        with pytest.raises(MarketDataError, match="Unsupported market type: stock"):
            run(market_service.get_prices(["AAPL"], "stock"))

    def test_failed_symbol_is_audited(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("ids") == "bitcoin":
                return httpx.Response(200, json={"bitcoin": {"inr": 5_000_000.0}})
            return httpx.Response(503)

        audit = RecordingAuditLogger()
        service = MarketDataService(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            api_url="https://prices.test/api/v3",
            audit_logger=audit,
        )

        prices = run(service.get_prices(["bitcoin", "ethereum"]))
        assert prices.prices == {"bitcoin": 5_000_000.0, "ethereum": 0.0}
        assert audit.event_types() == ["external_service_error"]
        assert audit.events[0].details == {"service": "market_data"}
        assert audit.events[0].error_message.startswith("ethereum:")


class TestSuggestions:
    """Tests for deterministic transaction suggestions."""

    def test_empty_history(self):
        suggestion = build_suggestion([])
        assert suggestion.merchant == ""
        assert suggestion.notes == ""
        assert suggestion.average_amount == 0
        assert suggestion.confidence == 0

    def test_most_frequent_merchant(self):
        suggestion = build_suggestion([
            make_transaction(merchant="Cafe"),
            make_transaction(merchant="Bakery"),
            make_transaction(merchant="Bakery"),
            make_transaction(merchant=None),
        ])
        assert suggestion.merchant == "Bakery"
        assert suggestion.confidence == 4

    def test_merchant_tie_goes_to_newest(self):
        suggestion = build_suggestion([
            make_transaction(merchant="Cafe"),
            make_transaction(merchant="Bakery"),
        ])
        assert suggestion.merchant == "Cafe"

    def test_notes_keep_first_five_long_words(self):
        suggestion = build_suggestion([
            make_transaction(notes="weekly groceries for the family"),
            make_transaction(notes="milk bread eggs and butter"),
        ])
        assert suggestion.notes == "weekly groceries family milk bread"

    def test_average_uses_base_amount(self):
        suggestion = build_suggestion([
            make_transaction(amount=10, currency="USD", metadata={"base_amount": 835.0}),
            make_transaction(amount=100),
        ])
        assert suggestion.average_amount == 468

    def test_average_rounds_half_up(self):
        suggestion = build_suggestion([make_transaction(amount=1), make_transaction(amount=2)])
        assert suggestion.average_amount == 2

    def test_service_scopes_to_user_and_category(self, transaction_storage):
        for amount in (100, 200):
            run(transaction_storage.insert_transaction(make_transaction(amount=amount, merchant="Metro")))
        run(transaction_storage.insert_transaction(make_transaction(amount=999, category_id="cat-rent")))
        run(transaction_storage.insert_transaction(make_transaction(amount=999, user_id="user-2")))

        suggestion = run(TransactionSuggestionService(transaction_storage).suggest(TEST_USER_ID, "cat-food"))
        assert suggestion.merchant == "Metro"
        assert suggestion.average_amount == 150
        assert suggestion.confidence == 2

    def test_service_uses_ten_most_recent(self, transaction_storage):
        for amount in range(1, 13):
            run(transaction_storage.insert_transaction(make_transaction(amount=amount)))

        suggestion = run(TransactionSuggestionService(transaction_storage).suggest(TEST_USER_ID, "cat-food"))
        assert suggestion.confidence == 10

    def test_no_category_matches_nothing(self, transaction_storage):
        for amount in (100, 200):
            run(transaction_storage.insert_transaction(make_transaction(amount=amount, category_id=None, merchant="Metro")))

        suggestion = run(TransactionSuggestionService(transaction_storage).suggest(TEST_USER_ID, None))
        assert suggestion.merchant == ""
        assert suggestion.average_amount == 0
        assert suggestion.confidence == 0


class TestAuditLogger:
    """Tests for the action-log side of the audit logger."""

    def entry(self) -> LogEntry:
        return LogEntry(user_id=TEST_USER_ID, action="create_transaction", ip_hash="h")

    def test_record_action_appends(self, audit_storage):
        logger = AuditLogger(audit_storage)
        assert run(logger.record_action(self.entry())) is True
        assert audit_storage.count() == 1

    def test_record_action_failure_is_swallowed(self, audit_storage):
        audit_storage.fail_with = RuntimeError("locked")
        logger = AuditLogger(audit_storage)
        assert run(logger.record_action(self.entry())) is False

    def test_record_action_without_storage(self):
        assert run(AuditLogger().record_action(self.entry())) is True


class TestSettings:
    """Tests for configuration parsing."""

    def test_static_token_map(self):
        settings = AuthSettings(static_tokens="a:user-a, b:user-b ,broken,:nobody")
        assert settings.static_token_map == {"a": "user-a", "b": "user-b"}

    def test_unknown_auth_provider_rejected(self):
        with pytest.raises(ValueError):
            AuthSettings(provider="ldap")

    def test_base_currency_upper_cased(self, monkeypatch):
        monkeypatch.setenv("BASE_CURRENCY", "usd")
        assert AppSettings().base_currency == "USD"

    def test_cors_origins_list(self):
        settings = AppSettings(cors_origins="https://a.test, https://b.test,")
        assert settings.cors_origins_list == ["https://a.test", "https://b.test"]

    def test_unknown_storage_backend_rejected(self):
        with pytest.raises(ValueError):
            AppSettings(storage_backend="sheets")

    def test_settings_come_from_environment(self):
        assert get_settings().app.ip_hash_salt == TEST_SALT
