"""Construction helpers for the NEAR escrow settlement flow."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from ....errors import ConfigurationError
from ..account import NearAccount
from ..provider import NearRpcProvider
from ..signer import HttpRawHashSigner, KeyPairSigner, NearSigner, RemoteHashSigner
from .deposit import EscrowDepositRelay
from .guard import InMemorySettlementStore, JsonFileSettlementStore, SettlementGuard
from .recordkeeper import RecordKeeperClient
from .registration import RegistrationChecker
from .settlement import SettlementOrchestrator

if TYPE_CHECKING:
    from ....config import Settings


def create_escrow_signer(
    settings: "Settings",
    provider: NearRpcProvider,
    client: httpx.AsyncClient | None = None,
) -> NearSigner:
    """Remote hash signer when configured, else the local escrow key.

    Raises:
        ConfigurationError: If neither is configured.
    """
    if not settings.has_escrow_signer:
        missing = "ESCROW_ACCOUNT_ID" if not settings.escrow_account_id else "ESCROW_PRIVATE_KEY"
        raise ConfigurationError(f"{missing} not set")
    if settings.remote_signer_url:
        sign_raw_hash = HttpRawHashSigner(
            settings.remote_signer_url,
            api_key=settings.remote_signer_api_key,
            client=client,
        )
        return RemoteHashSigner(sign_raw_hash, settings.escrow_account_id, provider)
    try:
        return KeyPairSigner.from_secret_key(settings.escrow_private_key)
    except ValueError as e:
        raise ConfigurationError(f"ESCROW_PRIVATE_KEY is malformed: {e}") from e


def create_settlement_guard(settings: "Settings") -> SettlementGuard:
    if settings.settlement_state_path:
        return SettlementGuard(JsonFileSettlementStore(settings.settlement_state_path))
    return SettlementGuard(InMemorySettlementStore())


def create_record_keeper(
    settings: "Settings",
    client: httpx.AsyncClient | None = None,
) -> RecordKeeperClient | None:
    if not settings.record_keeper_url:
        return None
    return RecordKeeperClient(settings.record_keeper_url, client=client)


def create_settlement_orchestrator(
    settings: "Settings",
    provider: NearRpcProvider | None = None,
    guard: SettlementGuard | None = None,
    client: httpx.AsyncClient | None = None,
) -> SettlementOrchestrator:
    """Wire an orchestrator from settings.

    Raises:
        ConfigurationError: If the escrow signer or platform fee account is missing.
    """
    if not settings.platform_fee_account_id:
        raise ConfigurationError("PLATFORM_FEE_ACCOUNT_ID not set")

    provider = provider or NearRpcProvider(settings.rpc_url, client=client)
    signer = create_escrow_signer(settings, provider, client=client)
    account = NearAccount(settings.escrow_account_id, provider, signer)

    return SettlementOrchestrator(
        account=account,
        registration=RegistrationChecker(provider, settings.token_contract_id),
        platform_fee_account_id=settings.platform_fee_account_id,
        record_keeper=create_record_keeper(settings, client=client),
        guard=guard or create_settlement_guard(settings),
    )


def create_deposit_relay(
    settings: "Settings",
    provider: NearRpcProvider | None = None,
    client: httpx.AsyncClient | None = None,
) -> EscrowDepositRelay:
    """Wire the escrow deposit relay from settings.

    Raises:
        ConfigurationError: If the relayer or escrow account is missing.
    """
    if not settings.has_relayer:
        raise ConfigurationError(
            "Relayer not configured. Set NEAR_RELAYER_ACCOUNT_ID and NEAR_RELAYER_PRIVATE_KEY."
        )
    if not settings.escrow_account_id:
        raise ConfigurationError("ESCROW_ACCOUNT_ID not set")
    try:
        signer = KeyPairSigner.from_secret_key(settings.relayer_private_key)
    except ValueError as e:
        raise ConfigurationError(f"NEAR_RELAYER_PRIVATE_KEY is malformed: {e}") from e

    provider = provider or NearRpcProvider(settings.rpc_url, client=client)
    return EscrowDepositRelay(
        relayer=NearAccount(settings.relayer_account_id, provider, signer),
        registration=RegistrationChecker(provider, settings.token_contract_id),
        escrow_account_id=settings.escrow_account_id,
    )
