"""Construction helpers for the implicit-account funding relay."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from ....errors import ConfigurationError
from ..account import NearAccount
from ..provider import NearRpcProvider
from ..signer import KeyPairSigner
from .faucet import FaucetClient
from .relay import FundingRelay

if TYPE_CHECKING:
    from ....config import Settings


def create_funding_relay(
    settings: "Settings",
    provider: NearRpcProvider | None = None,
    client: httpx.AsyncClient | None = None,
) -> FundingRelay:
    """Build a relay with whatever strategies the settings allow.

    The returned relay may be unconfigured; ``fund`` then raises
    ``FundingNotConfiguredError``.
    """
    funding_account = None
    if settings.has_direct_funding:
        try:
            signer = KeyPairSigner.from_secret_key(settings.funding_private_key)
        except ValueError as e:
            raise ConfigurationError(f"NEAR_FAUCET_PRIVATE_KEY is malformed: {e}") from e
        provider = provider or NearRpcProvider(settings.rpc_url, client=client)
        funding_account = NearAccount(settings.funding_account_id, provider, signer)

    faucet = FaucetClient(settings.faucet_url, client=client) if settings.has_faucet_funding else None

    try:
        return FundingRelay(
            network=settings.network,
            min_funding_amount=settings.min_funding_amount,
            funding_account=funding_account,
            faucet=faucet,
            faucet_enabled=settings.is_testnet,
        )
    except ValueError as e:
        raise ConfigurationError(f"MIN_NEAR_TO_CREATE_IMPLICIT is malformed: {e}") from e
