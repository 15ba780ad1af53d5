"""Implicit-account funding on NEAR (direct transfer or external faucet)."""

from veridoc.mechanisms.near.funding.faucet import FaucetClient
from veridoc.mechanisms.near.funding.register import create_funding_relay
from veridoc.mechanisms.near.funding.relay import (
    METHOD_DIRECT,
    METHOD_FAUCET,
    FundingRelay,
    FundingRequest,
    FundingResult,
)

__all__ = [
    "FaucetClient",
    "FundingRelay",
    "FundingRequest",
    "FundingResult",
    "METHOD_DIRECT",
    "METHOD_FAUCET",
    "create_funding_relay",
]
