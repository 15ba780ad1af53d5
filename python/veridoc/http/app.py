"""Starlette application exposing settlement and funding endpoints.

Routes:
    POST /settlements/release           release one consultation's escrow
    POST /settlements/release-pending   release everything the record keeper reports due
    POST /accounts/fund                 fund a new implicit account
    POST /escrow/deposit                relay a signed escrow deposit (relayer pays gas)
    POST /consultations/confirm-payment forward a deposit confirmation to the record keeper
    GET  /health
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError as BodyValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..config import Settings
from ..errors import (
    AuthError,
    ConfigurationError,
    EscrowError,
    FaucetError,
    PartialSettlementError,
    SettlementInProgressError,
    TransactionFailedError,
    UpstreamError,
    ValidationError,
)
from ..mechanisms.near.escrow.batch import release_pending
from ..mechanisms.near.escrow.deposit import EscrowDepositRelay
from ..mechanisms.near.escrow.register import (
    create_deposit_relay,
    create_record_keeper,
    create_settlement_guard,
    create_settlement_orchestrator,
)
from ..mechanisms.near.escrow.settlement import SettlementOrchestrator
from ..mechanisms.near.escrow.types import SettlementRequest
from ..mechanisms.near.funding.register import create_funding_relay
from ..mechanisms.near.funding.relay import FundingRelay
from ..mechanisms.near.utils import is_valid_account_id, parse_raw_amount
from .auth import require_secret
from .schemas import ConfirmPaymentBody, DepositBody, FundBody, ReleaseBody

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _escrow_error_response(exc: EscrowError) -> JSONResponse:
    if isinstance(exc, AuthError):
        return _error(401, "Unauthorized")
    if isinstance(exc, ConfigurationError):
        return _error(503, exc.message)
    if isinstance(exc, ValidationError):
        return _error(400, exc.message)
    if isinstance(exc, SettlementInProgressError):
        return _error(409, exc.message)
    if isinstance(exc, PartialSettlementError):
        result = exc.result
        return JSONResponse(
            {
                "success": False,
                "partial": True,
                "status": result.status,
                "consultationId": exc.consultation_id,
                "txHash": result.specialist_tx_hash,
                "specialistTxHash": result.specialist_tx_hash,
                "platformTxHash": None,
                "error": "Platform fee transfer failed after specialist payout",
                "details": exc.message,
            },
            status_code=207,
        )
    if isinstance(exc, UpstreamError):
        return _error(502, "Release failed", exc.message)
    return _error(500, "Release failed", exc.message)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def create_app(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    orchestrator_factory: Callable[[], SettlementOrchestrator] | None = None,
    funding_relay_factory: Callable[[], FundingRelay] | None = None,
    deposit_relay_factory: Callable[[], EscrowDepositRelay] | None = None,
) -> Starlette:
    """Build the application.

    Orchestrators and funding relays are built per request from ``settings``
    so each request carries its own signer and ledger client; the settlement
    guard is shared by the whole process.
    """
    guard = create_settlement_guard(settings)

    def build_orchestrator() -> SettlementOrchestrator:
        if orchestrator_factory is not None:
            return orchestrator_factory()
        return create_settlement_orchestrator(settings, guard=guard, client=http_client)

    def build_funding_relay() -> FundingRelay:
        if funding_relay_factory is not None:
            return funding_relay_factory()
        return create_funding_relay(settings, client=http_client)

    def build_deposit_relay() -> EscrowDepositRelay:
        if deposit_relay_factory is not None:
            return deposit_relay_factory()
        return create_deposit_relay(settings, client=http_client)

    async def release(request: Request) -> JSONResponse:
        try:
            require_secret(request, settings.cron_secret)
        except EscrowError as e:
            return _escrow_error_response(e)

        data = await _read_json(request)
        if data is None:
            return _error(400, "Invalid JSON body")
        try:
            body = ReleaseBody.model_validate(data)
        except BodyValidationError:
            return _error(400, "Missing required fields: consultationId, amountRaw, specialistAccount")

        if not is_valid_account_id(body.specialist_account):
            return _error(
                400,
                "specialistAccount is not a valid NEAR account (use specialist's nearAddress)",
            )

        try:
            orchestrator = build_orchestrator()
            result = await orchestrator.release(
                SettlementRequest(
                    consultation_id=body.consultation_id,
                    amount_raw=body.amount_raw,
                    specialist_account=body.specialist_account,
                )
            )
        except EscrowError as e:
            return _escrow_error_response(e)
        except Exception as e:
            logger.exception("Release of consultation %s failed", body.consultation_id)
            return _error(500, "Release failed", str(e))

        return JSONResponse(
            {
                "success": True,
                "consultationId": result.consultation_id,
                "txHash": result.specialist_tx_hash,
                "specialistTxHash": result.specialist_tx_hash,
                "platformTxHash": result.platform_tx_hash,
                "status": result.status,
                **result.split.to_dict(),
            }
        )

    async def release_pending_route(request: Request) -> JSONResponse:
        try:
            require_secret(request, settings.cron_secret)
            record_keeper = create_record_keeper(settings, client=http_client)
            if record_keeper is None:
                raise ConfigurationError("SPECIALIST_VERIFICATION_API_URL not set")
            orchestrator = build_orchestrator()
            batch = await release_pending(orchestrator, record_keeper)
        except UpstreamError as e:
            return _error(502, "Failed to fetch pending consultations", e.message)
        except EscrowError as e:
            return _escrow_error_response(e)
        except Exception as e:
            logger.exception("Batch release failed")
            return _error(500, "Cron job failed", str(e))

        return JSONResponse(batch.to_dict())

    async def fund(request: Request) -> JSONResponse:
        try:
            relay = build_funding_relay()
        except ConfigurationError as e:
            return _error(503, e.message)
        if not relay.is_configured:
            return _error(
                503,
                "NEAR funding not configured. Set NEAR_FAUCET_ACCOUNT_ID and NEAR_FAUCET_PRIVATE_KEY, "
                "or NEAR_FAUCET_URL on testnet.",
            )

        data = await _read_json(request)
        if data is None:
            return _error(400, "Invalid JSON body")
        try:
            body = FundBody.model_validate(data)
        except BodyValidationError:
            return _error(400, "Missing accountId in body")

        try:
            result = await relay.fund(body.account_id)
        except ValidationError as e:
            return _error(400, e.message)
        except ConfigurationError as e:
            return _error(503, e.message)
        except FaucetError as e:
            logger.error("Faucet funding of %s failed: %s", body.account_id, e.message)
            return _error(502, "Faucet funding failed", e.message)
        except Exception as e:
            logger.exception("Funding of %s failed", body.account_id)
            details = e.message if isinstance(e, EscrowError) else str(e)
            return _error(500, "Funding failed", details)

        return JSONResponse(result.to_dict())

    async def deposit(request: Request) -> JSONResponse:
        try:
            relay = build_deposit_relay()
        except ConfigurationError as e:
            return _error(503, e.message)

        data = await _read_json(request)
        if data is None:
            return _error(400, "Invalid JSON body")
        try:
            body = DepositBody.model_validate(data)
        except BodyValidationError:
            return _error(400, "Missing signedDelegateBase64 in body")

        try:
            result = await relay.relay(body.signed_delegate_base64)
        except ValidationError as e:
            return _error(400, e.message)
        except TransactionFailedError as e:
            logger.error("Relayed escrow deposit %s failed: %s", e.tx_hash, e.message)
            return JSONResponse(
                {"error": "Deposit transaction failed", "details": e.message, "txHash": e.tx_hash},
                status_code=502,
            )
        except UpstreamError as e:
            logger.error("Escrow deposit relay failed: %s", e.message)
            return _error(502, "Relay failed", e.message)
        except Exception as e:
            logger.exception("Escrow deposit relay failed")
            details = e.message if isinstance(e, EscrowError) else str(e)
            return _error(500, "Relay failed", details)

        return JSONResponse(result.to_dict())

    async def confirm_payment(request: Request) -> JSONResponse:
        record_keeper = create_record_keeper(settings, client=http_client)
        if record_keeper is None:
            return _error(503, "SPECIALIST_VERIFICATION_API_URL not set")

        data = await _read_json(request)
        if data is None:
            return _error(400, "Invalid JSON body")
        try:
            body = ConfirmPaymentBody.model_validate(data)
        except BodyValidationError:
            return _error(400, "Missing required fields: consultationId, txHash, amountRaw")
        try:
            parse_raw_amount(body.amount_raw)
        except ValueError:
            return _error(400, "amountRaw must be a non-negative integer string")

        try:
            confirmed = await record_keeper.confirm_payment(
                body.consultation_id,
                body.tx_hash,
                body.amount_raw,
            )
        except UpstreamError as e:
            status_code = e.context.get("status_code")
            if status_code:
                return _error(status_code, e.message, e.context.get("details"))
            logger.error("Payment confirmation for %s failed: %s", body.consultation_id, e.message)
            return _error(502, "Failed to confirm payment", e.message)

        return JSONResponse({"success": True, "data": confirmed})

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "network": settings.network})

    app = Starlette(
        routes=[
            Route("/settlements/release", release, methods=["POST"]),
            Route("/settlements/release-pending", release_pending_route, methods=["POST"]),
            Route("/accounts/fund", fund, methods=["POST"]),
            Route("/escrow/deposit", deposit, methods=["POST"]),
            Route("/consultations/confirm-payment", confirm_payment, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
    )
    app.state.settings = settings
    app.state.settlement_guard = guard
    return app
