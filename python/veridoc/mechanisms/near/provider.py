"""Async JSON-RPC provider for NEAR read and broadcast endpoints."""

from __future__ import annotations

import base64
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ...errors import RpcError
from .constants import DEFAULT_RPC_TIMEOUT_SECONDS, RPC_FINALITY, SEND_TX_WAIT_UNTIL
from .transactions import SignedTransaction

logger = logging.getLogger(__name__)


@dataclass
class AccessKeyView:
    """Nonce of an access key plus the block hash the view was taken at."""

    nonce: int
    block_hash: str
    permission: Any = None


class NearRpcProvider:
    """Thin JSON-RPC client over ``httpx.AsyncClient``.

    Single attempt per call; transport and JSON-RPC errors raise ``RpcError``.
    """

    def __init__(
        self,
        rpc_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_RPC_TIMEOUT_SECONDS,
    ):
        self._rpc_url = rpc_url
        self._client = client
        self._timeout = timeout
        self._ids = itertools.count(1)

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def json_rpc(self, method: str, params: Any) -> Any:
        body = {
            "jsonrpc": "2.0",
            "id": f"veridoc-{next(self._ids)}",
            "method": method,
            "params": params,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self._rpc_url, json=body, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._rpc_url, json=body)
        except httpx.HTTPError as e:
            raise RpcError(f"RPC transport error calling {method}: {e}", method=method) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise RpcError(
                f"RPC returned non-JSON response ({resp.status_code}) for {method}",
                method=method,
            ) from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            raise RpcError(_error_message(error), method=method, rpc_error=error)
        if resp.status_code >= 400:
            raise RpcError(f"RPC HTTP {resp.status_code} for {method}", method=method)

        return data.get("result")

    async def query(self, params: dict[str, Any]) -> dict[str, Any]:
        result = await self.json_rpc("query", {"finality": RPC_FINALITY, **params})
        # Some query failures come back as a result carrying an ``error`` string
        if isinstance(result, dict) and result.get("error"):
            raise RpcError(str(result["error"]), method="query", params=params)
        return result

    async def view_access_key_list(self, account_id: str) -> list[dict[str, Any]]:
        result = await self.query(
            {"request_type": "view_access_key_list", "account_id": account_id}
        )
        return list(result.get("keys") or [])

    async def view_access_key(self, account_id: str, public_key: str) -> AccessKeyView:
        result = await self.query(
            {
                "request_type": "view_access_key",
                "account_id": account_id,
                "public_key": public_key,
            }
        )
        return AccessKeyView(
            nonce=int(result["nonce"]),
            block_hash=result["block_hash"],
            permission=result.get("permission"),
        )

    async def call_function(
        self,
        contract_id: str,
        method_name: str,
        args: dict[str, Any],
    ) -> Any:
        """Run a view method and decode its JSON return value.

        Returns None for an empty or non-JSON return value.
        """
        args_base64 = base64.b64encode(json.dumps(args).encode("utf-8")).decode("ascii")
        result = await self.query(
            {
                "request_type": "call_function",
                "account_id": contract_id,
                "method_name": method_name,
                "args_base64": args_base64,
            }
        )
        raw = result.get("result") if isinstance(result, dict) else None
        if not raw or not isinstance(raw, list):
            return None
        try:
            return json.loads(bytes(raw).decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            return None

    async def send_transaction(self, signed: SignedTransaction) -> dict[str, Any]:
        """Broadcast and wait for the final execution outcome."""
        encoded = base64.b64encode(signed.encode()).decode("ascii")
        logger.debug("Broadcasting tx %s to %s", signed.tx_hash, signed.transaction.receiver_id)
        return await self.json_rpc(
            "send_tx",
            {"signed_tx_base64": encoded, "wait_until": SEND_TX_WAIT_UNTIL},
        )


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        cause = error.get("cause")
        if isinstance(cause, dict) and cause.get("name"):
            return f"{error.get('name', 'RPC_ERROR')}: {cause['name']}"
        return str(error.get("message") or error.get("name") or error)
    return str(error)
