"""HTTP client for the external consultation record keeper.

The record keeper mirrors settlement outcomes for display. The ledger stays
the source of truth, so notification is single-attempt and best effort.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ....errors import UpstreamError
from .constants import (
    RECORD_KEEPER_CONFIRM_PAYMENT_PATH,
    RECORD_KEEPER_PENDING_PATH,
    RECORD_KEEPER_RELEASE_PATH,
)
from .types import SettlementResult

logger = logging.getLogger(__name__)


class RecordKeeperClient:
    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        if self._client is not None:
            return await self._client.request(method, url, timeout=self._timeout, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    async def notify_release(self, result: SettlementResult) -> bool:
        """POST the produced outcomes. Never raises; returns whether it was accepted."""
        path = RECORD_KEEPER_RELEASE_PATH.format(consultation_id=result.consultation_id)
        body = {
            "releasedAt": datetime.now(timezone.utc).isoformat(),
            "releaseTxHash": result.specialist_tx_hash or result.platform_tx_hash,
            "specialistTxHash": result.specialist_tx_hash,
            "platformTxHash": result.platform_tx_hash,
            "status": result.status,
        }
        try:
            resp = await self._request("POST", path, json=body)
        except httpx.HTTPError as e:
            logger.warning(
                "Record keeper notification failed for consultation %s: %s",
                result.consultation_id,
                e,
            )
            return False

        if resp.status_code >= 400:
            logger.warning(
                "Record keeper rejected release of consultation %s: HTTP %s",
                result.consultation_id,
                resp.status_code,
            )
            return False
        return True

    async def list_pending_releases(self) -> list[dict[str, Any]]:
        """Consultations whose escrow is due for release.

        Raises:
            UpstreamError: If the record keeper cannot be reached or errors.
        """
        try:
            resp = await self._request("GET", RECORD_KEEPER_PENDING_PATH)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch pending consultations: {e}") from e

        if resp.status_code >= 400:
            try:
                details = resp.json().get("message")
            except (ValueError, AttributeError):
                details = None
            raise UpstreamError(
                f"Failed to fetch pending consultations: {resp.status_code}",
                status_code=resp.status_code,
                details=details,
            )
        try:
            data = resp.json().get("data")
        except (ValueError, AttributeError) as e:
            raise UpstreamError("Record keeper returned a malformed pending list") from e
        return list(data or [])

    async def confirm_payment(self, consultation_id: str, tx_hash: str, amount_raw: str) -> Any:
        """Tell the record keeper a consultation's escrow deposit landed.

        Returns the record keeper's ``data`` payload.

        Raises:
            UpstreamError: Carries ``status_code`` when the record keeper
                answered with an error status.
        """
        path = RECORD_KEEPER_CONFIRM_PAYMENT_PATH.format(consultation_id=consultation_id)
        body = {
            "txHash": tx_hash,
            "amountRaw": amount_raw,
            "paidAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            resp = await self._request("POST", path, json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to confirm payment: {e}", consultation_id=consultation_id) from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {}

        if resp.status_code >= 400:
            raise UpstreamError(
                payload.get("message") or f"Backend API Error: {resp.status_code}",
                consultation_id=consultation_id,
                status_code=resp.status_code,
                details=payload.get("error"),
            )
        logger.info("Payment for consultation %s confirmed with record keeper (%s)", consultation_id, tx_hash)
        return payload.get("data")
