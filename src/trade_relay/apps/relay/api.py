"""FastAPI application exposing the relay to the browser page.

Routes:
    GET  /             static page
    POST /api/connect  authorize an API token and open a relay session
    POST /api/trade    buy a contract for a session
    GET  /api/result   poll the final result of the session's latest trade

Every error body has the shape ``{"status": "error", "message": ...}``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from trade_relay.apps.relay.config import RelayConfig, load_relay_config
from trade_relay.apps.relay.models import TradeRequest
from trade_relay.apps.relay.service import RelayService
from trade_relay.clients.deriv.exceptions import DerivAPIError, DerivError, DerivTimeoutError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from trade_relay.apps.relay.protocols import SessionFactory

logger = logging.getLogger(__name__)

_STATIC_DIR = Path(__file__).parent / "static"

_MSG_NO_TOKEN = "Token API no proporcionado."
_MSG_NO_SESSION = "No hay sesión activa. Conéctese primero."
_MSG_MISSING_TRADE_FIELDS = "Faltan parámetros de operación."
_MSG_UNKNOWN_SESSION = "Sesión desconocida."
_MSG_AUTH_CONNECTION = "Error de conexión WebSocket en Auth."
_MSG_TRADE_CONNECTION = "Error de conexión WebSocket en Trade."
_MSG_AUTH_TIMEOUT = "Tiempo de espera agotado en Auth."
_MSG_TRADE_TIMEOUT = "Tiempo de espera agotado en Trade."
_MSG_TRADE_STARTED = "Trade iniciado."


class ConnectBody(BaseModel):
    """Body of ``POST /api/connect``."""

    model_config = ConfigDict(populate_by_name=True)

    api_token: str | None = Field(default=None, alias="apiToken")


class TradeBody(BaseModel):
    """Body of ``POST /api/trade``; fields are checked for presence by the handler."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal | None = None
    duration: int | None = None
    contract_type: str | None = Field(default=None, alias="contractType")
    session_id: str | None = Field(default=None, alias="sessionId")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def create_app(
    config: RelayConfig | None = None,
    session_factory: SessionFactory | None = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        config: Relay configuration. Defaults to the YAML settings.
        session_factory: Upstream session factory, overridden in tests.

    Returns:
        Configured FastAPI application.

    """
    service = RelayService(config or load_relay_config(), session_factory)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("Relay ready, upstream %s", service.config.ws_url)
        yield
        await service.close()
        logger.info("Relay stopped")

    app = FastAPI(title="Trade Relay", version="0.1.0", lifespan=lifespan)
    app.state.relay = service

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors: list[Any] = list(exc.errors())
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        return _error(400, f"{location}: {detail}" if location else str(detail))

    @app.get("/", include_in_schema=False)
    async def index() -> FileResponse:
        return FileResponse(_STATIC_DIR / "index.html")

    @app.post("/api/connect")
    async def connect(body: ConnectBody) -> JSONResponse:
        """Authorize an API token and open a relay session."""
        if not body.api_token:
            return _error(400, _MSG_NO_TOKEN)
        try:
            session, account = await service.connect(body.api_token)
        except DerivAPIError as exc:
            logger.warning("Authorization rejected: %s", exc)
            return _error(500, exc.message)
        except DerivTimeoutError as exc:
            logger.warning("Authorization timed out: %s", exc)
            return _error(500, _MSG_AUTH_TIMEOUT)
        except DerivError as exc:
            logger.error("WebSocket error during auth: %s", exc)
            return _error(500, _MSG_AUTH_CONNECTION)
        return JSONResponse(
            {
                "status": "success",
                "message": f"Autenticación exitosa con {account.login_id}.",
                "account_id": account.login_id,
                "balance": float(account.balance),
                "session_id": session.session_id,
            }
        )

    @app.post("/api/trade")
    async def trade(
        body: TradeBody,
        x_session_id: Annotated[str | None, Header()] = None,
    ) -> JSONResponse:
        """Buy a contract and start following it until it settles."""
        session = service.registry.resolve(body.session_id or x_session_id)
        if session is None:
            return _error(401, _MSG_NO_SESSION)
        if not body.amount or not body.duration or not body.contract_type:
            return _error(400, _MSG_MISSING_TRADE_FIELDS)

        request = TradeRequest(
            amount=body.amount, duration=body.duration, contract_type=body.contract_type
        )
        try:
            receipt = await service.start_trade(session, request)
        except DerivAPIError as exc:
            logger.error("Trade rejected (%s): %s", exc.msg_type or "unknown", exc)
            status_code = 400 if exc.msg_type == "buy" else 500
            return _error(status_code, exc.message)
        except DerivTimeoutError as exc:
            logger.warning("Trade timed out: %s", exc)
            return _error(500, _MSG_TRADE_TIMEOUT)
        except DerivError as exc:
            logger.error("WebSocket error during trade: %s", exc)
            return _error(500, _MSG_TRADE_CONNECTION)
        return JSONResponse(
            {
                "status": "success",
                "message": _MSG_TRADE_STARTED,
                "contract_id": receipt.contract_id,
                "buy_price": float(receipt.buy_price),
                "session_id": session.session_id,
            }
        )

    @app.get("/api/result")
    async def result(
        session_id: str | None = None,
        x_session_id: Annotated[str | None, Header()] = None,
    ) -> JSONResponse:
        """Return the final result of the session's latest trade, or null."""
        explicit_id = session_id or x_session_id
        session = service.registry.resolve(explicit_id)
        if explicit_id and session is None:
            return _error(404, _MSG_UNKNOWN_SESSION)
        return JSONResponse({"result": service.read_result(session)})

    return app
