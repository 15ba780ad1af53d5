"""HTTP client for an external faucet / relayer that funds testnet accounts."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ....errors import FaucetError

logger = logging.getLogger(__name__)


class FaucetClient:
    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._url = url
        self._client = client
        self._timeout = timeout

    async def request_funds(self, network: str, address: str, amount: str) -> str:
        """Ask the faucet to fund ``address``; returns the faucet's transaction id.

        Raises:
            FaucetError: On transport failure, an error status or a response
                without a transaction id.
        """
        body = {"network": network, "address": address, "amount": amount}
        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=body, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=body)
        except httpx.HTTPError as e:
            raise FaucetError(f"Faucet unreachable: {e}", address=address) from e

        data: Any
        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise FaucetError(
                f"Faucet returned {resp.status_code}: {message or resp.text[:200]}",
                address=address,
                status_code=resp.status_code,
            )

        tx_id = None
        if isinstance(data, dict):
            tx_id = data.get("txId") or data.get("txHash") or data.get("id")
        if not tx_id:
            raise FaucetError("Faucet response has no transaction id", address=address)

        logger.info("Faucet funded %s on %s: %s", address, network, tx_id)
        return str(tx_id)
