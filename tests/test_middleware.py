"""
בדיקות ל-Middleware: marketplace_wallet/core/middleware.py

מכסה:
- CorrelationIdMiddleware: הפצת correlation ID בבקשות
- RequestLoggingMiddleware: לוג בקשות והעלאת שגיאות מחדש
- SecurityHeadersMiddleware: כותרות אבטחה לפי מצב DEBUG
- Exception handlers: טיפול ב-AppException ו-Exception גנרי
- setup_middleware: ה-stack המלא דרך האפליקציה
"""
import json
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from marketplace_wallet.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    app_exception_handler,
    generic_exception_handler,
)
from marketplace_wallet.core.exceptions import (
    ErrorCode,
    InsufficientBalanceError,
    ValidationException,
)


# ============================================================================
# Helpers
# ============================================================================


def _hello(request: Request) -> PlainTextResponse:
    """endpoint מינימלי לבדיקה."""
    return PlainTextResponse("ok")


def _error(request: Request) -> PlainTextResponse:
    """endpoint שזורק שגיאה."""
    raise ValueError("שגיאת בדיקה")


def _build_app(*, middlewares: list[tuple] | None = None) -> Starlette:
    """בונה אפליקציית Starlette מינימלית עם middleware."""
    app = Starlette(routes=[Route("/test", _hello), Route("/error", _error)])
    for mw_class, kwargs in middlewares or []:
        app.add_middleware(mw_class, **kwargs)
    return app


# ============================================================================
# בדיקות CorrelationIdMiddleware
# ============================================================================


class TestCorrelationIdMiddleware:
    """בדיקות להפצת Correlation ID"""

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        """יוצר correlation ID חדש כשאין בבקשה"""
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert len(response.headers["x-correlation-id"]) == 8

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        """משתמש ב-correlation ID שסופק בבקשה"""
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "checkout-42"})
            assert response.headers["x-correlation-id"] == "checkout-42"


# ============================================================================
# בדיקות RequestLoggingMiddleware
# ============================================================================


class TestRequestLoggingMiddleware:
    """בדיקות ללוג בקשות"""

    @pytest.mark.unit
    def test_successful_request_logged(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app) as client:
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_exception_in_handler_reraised(self) -> None:
        """exception ב-handler עולה מחדש"""
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=False) as client:
            assert client.get("/error").status_code == 500


# ============================================================================
# בדיקות SecurityHeadersMiddleware
# ============================================================================


class TestSecurityHeadersMiddleware:

    @pytest.mark.unit
    def test_production_headers(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": False})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.headers["x-content-type-options"] == "nosniff"
            assert "upgrade-insecure-requests" in response.headers["content-security-policy"]
            assert "includeSubDomains" in response.headers["strict-transport-security"]

    @pytest.mark.unit
    def test_no_csp_in_debug_mode(self) -> None:
        """במצב debug: אין CSP ו-HSTS, nosniff תמיד"""
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": True})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert "content-security-policy" not in response.headers
            assert "strict-transport-security" not in response.headers
            assert response.headers["x-content-type-options"] == "nosniff"


# ============================================================================
# בדיקות Exception Handlers
# ============================================================================


class TestExceptionHandlers:

    @pytest.mark.asyncio
    async def test_handles_wallet_exception(self) -> None:
        """מטפל בשגיאת ארנק ומחזיר JSON עם קוד ופרטים"""
        exc = InsufficientBalanceError(user_id=7, current_balance=20, required_amount=25)

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/wallets/7/redeem"

        response = await app_exception_handler(mock_request, exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 400
        assert "x-correlation-id" in response.headers
        body = json.loads(response.body)
        assert body["error"]["code"] == ErrorCode.INSUFFICIENT_BALANCE.value
        assert body["error"]["details"] == {
            "current_balance": 20,
            "required_amount": 25,
            "user_id": 7,
        }

    @pytest.mark.asyncio
    async def test_handles_validation_exception(self) -> None:
        exc = ValidationException(message="page must be at least 1", field="page")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/wallets/1/transactions"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_generic_handler_does_not_leak_internal_details(self) -> None:
        """לא חושף פרטים פנימיים בתשובה"""
        exc = RuntimeError("database connection failed on host 10.0.0.1")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/test"

        response = await generic_exception_handler(mock_request, exc)

        assert response.status_code == 500
        body = response.body.decode()
        assert "10.0.0.1" not in body
        assert "ERR_1000" in body


# ============================================================================
# בדיקות setup_middleware
# ============================================================================


class TestSetupMiddleware:

    @pytest.mark.asyncio
    async def test_full_middleware_stack(self, test_client) -> None:
        """כל ה-middleware stack עובד יחד: בדיקה דרך test_client"""
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert "x-correlation-id" in response.headers
        assert response.headers.get("x-content-type-options") == "nosniff"
