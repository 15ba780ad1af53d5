"""NEP-145 storage registration checks on the settlement token."""

from __future__ import annotations

import logging

from ..constants import STORAGE_DEPOSIT_ONE_ACCOUNT
from ..provider import NearRpcProvider
from ..transactions import FunctionCallAction, create_storage_deposit_action

logger = logging.getLogger(__name__)


class RegistrationChecker:
    """Knows whether an account can receive the token and how to register it."""

    def __init__(
        self,
        provider: NearRpcProvider,
        token_contract_id: str,
        deposit_yocto: int = STORAGE_DEPOSIT_ONE_ACCOUNT,
    ):
        self._provider = provider
        self._token_contract_id = token_contract_id
        self._deposit_yocto = deposit_yocto

    @property
    def token_contract_id(self) -> str:
        return self._token_contract_id

    async def has_registration(self, account_id: str) -> bool:
        balance = await self._provider.call_function(
            self._token_contract_id,
            "storage_balance_of",
            {"account_id": account_id},
        )
        registered = balance is not None
        logger.debug("Storage registration for %s on %s: %s", account_id, self._token_contract_id, registered)
        return registered

    def build_registration_action(self, account_id: str) -> FunctionCallAction:
        return create_storage_deposit_action(account_id, self._deposit_yocto)
