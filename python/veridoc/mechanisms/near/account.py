"""Ledger transaction submitter for a single NEAR account."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ...errors import TransactionFailedError
from .provider import NearRpcProvider
from .signer import NearSigner
from .transactions import Action, Transaction, create_transfer_action, decode_block_hash, tx_hash_from_digest

logger = logging.getLogger(__name__)


@dataclass
class TransactionResult:
    """Confirmed transaction: its hash plus the raw final execution outcome."""

    tx_hash: str
    outcome: dict[str, Any] = field(default_factory=dict)


class NearAccount:
    """Builds, signs and broadcasts transactions from ``account_id``.

    One nonce lookup per transaction; no retries.
    """

    def __init__(self, account_id: str, provider: NearRpcProvider, signer: NearSigner):
        self.account_id = account_id
        self._provider = provider
        self._signer = signer

    @property
    def provider(self) -> NearRpcProvider:
        return self._provider

    async def sign_and_send_transaction(
        self,
        receiver_id: str,
        actions: Sequence[Action],
    ) -> TransactionResult:
        public_key = await self._signer.get_public_key()
        access_key = await self._provider.view_access_key(self.account_id, str(public_key))

        tx = Transaction(
            signer_id=self.account_id,
            public_key=public_key,
            nonce=access_key.nonce + 1,
            receiver_id=receiver_id,
            block_hash=decode_block_hash(access_key.block_hash),
            actions=tuple(actions),
        )
        digest, signed = await self._signer.sign_transaction(tx)
        tx_hash = tx_hash_from_digest(digest)

        outcome = await self._provider.send_transaction(signed)
        outcome = outcome or {}

        failure = _extract_failure(outcome)
        if failure is not None:
            raise TransactionFailedError(
                f"Transaction {tx_hash} failed: {failure}",
                tx_hash=tx_hash,
                receiver_id=receiver_id,
            )

        reported = (outcome.get("transaction_outcome") or {}).get("id")
        if isinstance(reported, str) and reported != tx_hash:
            logger.warning("RPC reported tx id %s for locally computed hash %s", reported, tx_hash)
            tx_hash = reported

        logger.info("Transaction %s from %s to %s confirmed", tx_hash, self.account_id, receiver_id)
        return TransactionResult(tx_hash=tx_hash, outcome=outcome)

    async def send_money(self, receiver_id: str, amount_yocto: int) -> TransactionResult:
        return await self.sign_and_send_transaction(
            receiver_id, [create_transfer_action(amount_yocto)]
        )


def _extract_failure(outcome: dict[str, Any]) -> Any:
    """Return the failure payload of a final execution outcome, or None."""
    status = outcome.get("status")
    if isinstance(status, dict) and "Failure" in status:
        return status["Failure"]

    for receipt in outcome.get("receipts_outcome") or []:
        receipt_status = (receipt.get("outcome") or {}).get("status")
        if isinstance(receipt_status, dict) and "Failure" in receipt_status:
            return receipt_status["Failure"]
    return None
