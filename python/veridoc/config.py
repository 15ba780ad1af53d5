"""Environment-derived configuration.

Values are read once per process via ``Settings.from_env()``. Anything left
unset is ``None`` so callers can report exactly which capability is missing.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .mechanisms.near.constants import (
    DEFAULT_MIN_FUNDING_NEAR,
    NEAR_MAINNET,
    NEAR_TESTNET,
    USDT_CONTRACT_BY_NETWORK,
)
from .mechanisms.near.utils import get_rpc_url

_NETWORK_ALIASES = {
    "mainnet": NEAR_MAINNET,
    "testnet": NEAR_TESTNET,
    NEAR_MAINNET: NEAR_MAINNET,
    NEAR_TESTNET: NEAR_TESTNET,
}


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    """Runtime configuration for the settlement service."""

    network: str = NEAR_MAINNET
    rpc_url: str | None = None
    token_contract_id: str | None = None

    # Escrow (source of settlement funds)
    escrow_account_id: str | None = None
    escrow_private_key: str | None = None
    remote_signer_url: str | None = None
    remote_signer_api_key: str | None = None
    platform_fee_account_id: str | None = None

    # Pays gas for relayed escrow deposits
    relayer_account_id: str | None = None
    relayer_private_key: str | None = None

    # Shared secret for release endpoints
    cron_secret: str | None = None

    # External record keeper
    record_keeper_url: str | None = None

    # Implicit account funding
    funding_account_id: str | None = None
    funding_private_key: str | None = None
    faucet_url: str | None = None
    min_funding_amount: str = DEFAULT_MIN_FUNDING_NEAR

    settlement_state_path: str | None = None
    port: int = 4030
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        network = _NETWORK_ALIASES.get(self.network)
        if network is None:
            raise ValueError(f"Unknown NEAR network: {self.network}")
        self.network = network
        if self.rpc_url is None:
            self.rpc_url = get_rpc_url(self.network)
        if self.token_contract_id is None:
            self.token_contract_id = USDT_CONTRACT_BY_NETWORK[self.network]

    @property
    def is_testnet(self) -> bool:
        return self.network == NEAR_TESTNET

    @property
    def has_escrow_signer(self) -> bool:
        """Escrow account plus either a remote signer or a local key."""
        return bool(self.escrow_account_id and (self.remote_signer_url or self.escrow_private_key))

    @property
    def has_relayer(self) -> bool:
        return bool(self.relayer_account_id and self.relayer_private_key)

    @property
    def has_direct_funding(self) -> bool:
        return bool(self.funding_account_id and self.funding_private_key)

    @property
    def has_faucet_funding(self) -> bool:
        return self.is_testnet and bool(self.faucet_url)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from the process environment (and ``.env`` if present)."""
        if dotenv:
            load_dotenv()

        return cls(
            network=_env("NEAR_NETWORK") or NEAR_MAINNET,
            rpc_url=_env("NEAR_RPC_URL"),
            token_contract_id=_env("USDT_CONTRACT_ID"),
            escrow_account_id=_env("ESCROW_ACCOUNT_ID"),
            escrow_private_key=_env("ESCROW_PRIVATE_KEY"),
            remote_signer_url=_env("REMOTE_SIGNER_URL"),
            remote_signer_api_key=_env("REMOTE_SIGNER_API_KEY"),
            platform_fee_account_id=_env("PLATFORM_FEE_ACCOUNT_ID"),
            relayer_account_id=_env("NEAR_RELAYER_ACCOUNT_ID"),
            relayer_private_key=_env("NEAR_RELAYER_PRIVATE_KEY"),
            cron_secret=_env("CRON_SECRET"),
            record_keeper_url=_env("SPECIALIST_VERIFICATION_API_URL"),
            funding_account_id=_env("NEAR_FAUCET_ACCOUNT_ID"),
            funding_private_key=_env("NEAR_FAUCET_PRIVATE_KEY"),
            faucet_url=_env("NEAR_FAUCET_URL"),
            min_funding_amount=_env("MIN_NEAR_TO_CREATE_IMPLICIT") or DEFAULT_MIN_FUNDING_NEAR,
            settlement_state_path=_env("SETTLEMENT_STATE_PATH"),
            port=int(_env("PORT") or "4030"),
            log_level=_env("LOG_LEVEL") or "INFO",
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
