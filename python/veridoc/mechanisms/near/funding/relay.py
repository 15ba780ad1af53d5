"""Funding of freshly created implicit accounts.

Strategy, chosen once per request:

1. A locally held funding account (id + key) sends the minimum balance.
2. Otherwise, on testnet, an external faucet is asked to do it.
3. Otherwise funding is not configured.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ....errors import FundingNotConfiguredError, InvalidAccountIdError
from ..account import NearAccount
from ..utils import is_implicit_account_id, near_to_yocto
from .faucet import FaucetClient

logger = logging.getLogger(__name__)

METHOD_DIRECT = "direct"
METHOD_FAUCET = "faucet"


@dataclass
class FundingRequest:
    account_id: str
    amount: str

    def validate(self) -> None:
        if not is_implicit_account_id(self.account_id):
            raise InvalidAccountIdError(
                "accountId must be a 64-character lowercase hex string (implicit account)",
                account_id=self.account_id,
            )


@dataclass
class FundingResult:
    account_id: str
    amount: str
    method: str
    tx_hash: str | None = None
    external_tx_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": True}
        if self.tx_hash is not None:
            body["txHash"] = self.tx_hash
        if self.external_tx_id is not None:
            body["externalTxId"] = self.external_tx_id
        body["accountId"] = self.account_id
        body["amount"] = self.amount
        return body


class FundingRelay:
    def __init__(
        self,
        network: str,
        min_funding_amount: str,
        funding_account: NearAccount | None = None,
        faucet: FaucetClient | None = None,
        faucet_enabled: bool = False,
    ):
        self._network = network
        self._amount = min_funding_amount
        self._amount_yocto = near_to_yocto(min_funding_amount)
        self._funding_account = funding_account
        self._faucet = faucet
        self._faucet_enabled = faucet_enabled

    @property
    def is_configured(self) -> bool:
        return self._funding_account is not None or self._faucet_usable

    @property
    def _faucet_usable(self) -> bool:
        return self._faucet is not None and self._faucet_enabled

    async def fund(self, account_id: str) -> FundingResult:
        """Fund ``account_id`` with the configured minimum amount.

        Raises:
            InvalidAccountIdError: Before any network I/O.
            FundingNotConfiguredError: No usable strategy.
            FaucetError / UpstreamError: From the chosen strategy.
        """
        request = FundingRequest(account_id=account_id, amount=self._amount)
        request.validate()

        if self._funding_account is not None:
            tx = await self._funding_account.send_money(request.account_id, self._amount_yocto)
            logger.info("Funded %s with %s NEAR from %s: %s", account_id, self._amount, self._funding_account.account_id, tx.tx_hash)
            return FundingResult(
                account_id=account_id,
                amount=self._amount,
                method=METHOD_DIRECT,
                tx_hash=tx.tx_hash,
            )

        if self._faucet_usable:
            tx_id = await self._faucet.request_funds(self._network, account_id, self._amount)
            return FundingResult(
                account_id=account_id,
                amount=self._amount,
                method=METHOD_FAUCET,
                external_tx_id=tx_id,
            )

        raise FundingNotConfiguredError(
            "NEAR funding not configured. Set NEAR_FAUCET_ACCOUNT_ID and NEAR_FAUCET_PRIVATE_KEY, "
            "or NEAR_FAUCET_URL on testnet."
        )
