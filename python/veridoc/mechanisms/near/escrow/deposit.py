"""Gasless escrow deposits through NEP-366 meta-transactions.

A payer signs a delegate action holding an ``ft_transfer`` of the settlement
token to the escrow account. The relayer wraps that delegate in a transaction
it signs and pays gas for. The delegate is only relayed when every action in
it is such a transfer; anything else is refused before touching the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ....errors import InvalidDelegateError
from ..account import NearAccount
from ..transactions import SignedDelegateAction
from ..utils import parse_raw_amount
from .constants import DEPOSIT_METHOD
from .registration import RegistrationChecker

logger = logging.getLogger(__name__)


@dataclass
class DepositResult:
    tx_hash: str
    sender_id: str
    amount_raw: str
    memo: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "success": True,
            "txHash": self.tx_hash,
            "senderId": self.sender_id,
            "amountRaw": self.amount_raw,
        }
        if self.memo is not None:
            d["memo"] = self.memo
        return d


@dataclass
class _Deposit:
    amount_raw: int
    memo: str | None


class EscrowDepositRelay:
    """Relays signed escrow deposits; the relayer account pays gas."""

    def __init__(
        self,
        relayer: NearAccount,
        registration: RegistrationChecker,
        escrow_account_id: str,
    ):
        self._relayer = relayer
        self._registration = registration
        self._escrow_account_id = escrow_account_id

    @property
    def token_contract_id(self) -> str:
        return self._registration.token_contract_id

    async def relay(self, signed_delegate_base64: str) -> DepositResult:
        """Validate and relay one signed delegate.

        Raises:
            InvalidDelegateError: Malformed, or not a deposit into escrow.
            TransactionFailedError: The relayed transaction executed and failed.
            UpstreamError: Ledger or signing failure.
        """
        try:
            signed = SignedDelegateAction.from_base64(signed_delegate_base64)
        except ValueError as e:
            raise InvalidDelegateError(str(e)) from e

        deposit = self._check(signed)
        await self._ensure_escrow_registration()

        # The outer transaction is addressed to the delegate's sender
        result = await self._relayer.sign_and_send_transaction(signed.sender_id, [signed])
        logger.info(
            "Relayed escrow deposit of %s from %s in %s (memo %r)",
            deposit.amount_raw,
            signed.sender_id,
            result.tx_hash,
            deposit.memo,
        )
        return DepositResult(
            tx_hash=result.tx_hash,
            sender_id=signed.sender_id,
            amount_raw=str(deposit.amount_raw),
            memo=deposit.memo,
        )

    def _check(self, signed: SignedDelegateAction) -> _Deposit:
        """Whitelist: token transfers into the escrow account and nothing else."""
        if signed.receiver_id != self.token_contract_id:
            raise InvalidDelegateError(
                f"Delegate receiver must be {self.token_contract_id}",
                receiver_id=signed.receiver_id,
            )

        calls = signed.function_calls()
        transfers = [c for c in calls if c.method_name == DEPOSIT_METHOD]
        if not transfers:
            raise InvalidDelegateError("No ft_transfer action found in delegate")
        if len(transfers) != len(signed.actions):
            raise InvalidDelegateError("Delegate may only carry ft_transfer actions")

        total = 0
        memo = None
        for call in transfers:
            try:
                args = call.json_args()
            except ValueError as e:
                raise InvalidDelegateError("ft_transfer arguments are not valid JSON") from e
            if not isinstance(args, dict):
                raise InvalidDelegateError("ft_transfer arguments must be a JSON object")

            receiver = args.get("receiver_id")
            if receiver != self._escrow_account_id:
                raise InvalidDelegateError(
                    f"Transfer receiver must be escrow account ({self._escrow_account_id}), got {receiver}"
                )
            try:
                total += parse_raw_amount(args.get("amount"))
            except ValueError as e:
                raise InvalidDelegateError(f"Invalid ft_transfer amount: {e}") from e
            if memo is None and isinstance(args.get("memo"), str):
                memo = args["memo"]

        if total == 0:
            raise InvalidDelegateError("Deposit amount must be positive")
        return _Deposit(amount_raw=total, memo=memo)

    async def _ensure_escrow_registration(self) -> None:
        if await self._registration.has_registration(self._escrow_account_id):
            return
        logger.info(
            "Registering escrow %s on %s at relayer expense",
            self._escrow_account_id,
            self.token_contract_id,
        )
        await self._relayer.sign_and_send_transaction(
            self.token_contract_id,
            [self._registration.build_registration_action(self._escrow_account_id)],
        )
