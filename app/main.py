"""
HTTP API for the Finance Tracker backend

FastAPI application exposing the endpoints the dashboard calls:

- POST /transactions            create a transaction (bearer auth)
- POST /currency-converter      convert an amount between currencies
- POST /market-data             crypto prices (bearer auth)
- POST /ai-suggest-transaction  prefill values for a category (bearer auth)

Every error response has the same shape: {"error": "<message>"}.
The submitting form shows that message verbatim.

Run locally with:
    uvicorn app.main:app --reload
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.audit import create_correlation_id
from src.config import get_settings, validate_all_settings
from src.models.market import (
    CurrencyConversionRequest,
    MarketDataRequest,
    SuggestionRequest,
)
from src.orchestrator import AppComponents, create_app_components
from src.services.auth import Unauthorized
from src.services.exchange import ConversionDegraded, MarketDataError
from src.services.storage import StorageError
from src.validation import ValidationError


logger = structlog.get_logger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP statuses."""

    @app.exception_handler(Unauthorized)
    async def handle_unauthorized(request: Request, exc: Unauthorized):
        return error_response(str(exc), 401)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return error_response(str(exc), 400)

    @app.exception_handler(MarketDataError)
    async def handle_market_data_error(request: Request, exc: MarketDataError):
        return error_response(str(exc), 400)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            message = errors[0].get("msg", "Invalid request")
            return error_response(f"{location}: {message}" if location else message, 400)
        return error_response("Invalid request", 400)

    @app.exception_handler(ConversionDegraded)
    async def handle_conversion_degraded(request: Request, exc: ConversionDegraded):
        return error_response(exc.reason, 500)

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error("storage_error", path=request.url.path, error=str(exc))
        return error_response(str(exc), 500)


def check_settings() -> list[str]:
    """Log every settings group that fails to load and return their names."""
    status = validate_all_settings()
    failed = [name for name, ok in status.items() if ok is False]
    for name in failed:
        logger.error("settings_invalid", group=name, error=status[f"{name}_error"])
    return failed


def create_app(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        components: Pre-built services (tests pass in-memory storage and
                    mocked upstreams). Built from settings when omitted.
    """
    check_settings()
    settings = get_settings().app
    components = components or create_app_components()

    app = FastAPI(title="Finance Tracker API")
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    register_exception_handlers(app)

    @app.get("/")
    def read_root():
        """Simple health check."""
        return {"message": "Finance tracker API is running"}

    @app.post("/transactions")
    async def create_transaction(
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ):
        try:
            payload = await request.json()
        except ValueError:
            # Reported as a validation error once the caller is authenticated
            payload = None

        ingestion = components.ingestion
        transaction = await ingestion.ingest(
            authorization=authorization,
            payload=payload,
            client=ingestion.client_context(request.headers),
            correlation_id=create_correlation_id(),
        )
        return {"transaction": transaction.model_dump(mode="json")}

    @app.post("/currency-converter")
    async def convert_currency(body: CurrencyConversionRequest):
        conversion = await components.exchange.convert(
            body.from_currency,
            body.to_currency,
            body.amount,
        )
        return conversion.model_dump(mode="json", by_alias=True)

    @app.post("/market-data")
    async def market_data(
        body: MarketDataRequest,
        authorization: Optional[str] = Header(default=None),
    ):
        prices = await components.market_data.get_prices(
            authorization=authorization,
            symbols=body.symbols,
            market=body.type,
        )
        return prices.model_dump(mode="json", by_alias=True)

    @app.post("/ai-suggest-transaction")
    async def suggest_transaction(
        body: SuggestionRequest,
        authorization: Optional[str] = Header(default=None),
    ):
        suggestion = await components.suggestions.suggest(
            authorization=authorization,
            category_id=body.category_id,
        )
        return suggestion.model_dump(mode="json", by_alias=True)

    return app


app = create_app()
