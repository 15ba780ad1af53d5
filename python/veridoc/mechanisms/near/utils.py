"""Utility functions for NEAR settlement mechanisms."""

import re
from decimal import Decimal, InvalidOperation

from .constants import (
    IMPLICIT_ACCOUNT_LOOSE_REGEX,
    IMPLICIT_ACCOUNT_REGEX,
    MAX_ACCOUNT_ID_LENGTH,
    MIN_ACCOUNT_ID_LENGTH,
    NAMED_ACCOUNT_PART_REGEX,
    NEAR_DECIMALS,
    NETWORK_TO_RPC_URL,
)


def is_near_network(network: str) -> bool:
    """Check if a CAIP-2 identifier is a NEAR network."""
    return network in NETWORK_TO_RPC_URL


def get_rpc_url(network: str, custom_url: str | None = None) -> str:
    """Get the JSON-RPC URL for a NEAR network."""
    if custom_url:
        return custom_url
    url = NETWORK_TO_RPC_URL.get(network)
    if not url:
        raise ValueError(f"Unknown NEAR network: {network}")
    return url


def get_rpc_client(network: str, custom_url: str | None = None, **kwargs):
    """Create a JSON-RPC provider for the given network."""
    from .provider import NearRpcProvider

    return NearRpcProvider(get_rpc_url(network, custom_url), **kwargs)


def normalize_account_id(value: str) -> str:
    """Normalize a NEAR account id, or return "" if it is not valid.

    Implicit ids (64 hex, optionally 0x-prefixed) come back as lowercase hex
    without the prefix. Named ids come back lowercased.
    """
    if not isinstance(value, str):
        return ""
    s = value.strip()
    if not s:
        return ""

    if re.match(IMPLICIT_ACCOUNT_LOOSE_REGEX, s):
        return s.removeprefix("0x").lower()

    if not MIN_ACCOUNT_ID_LENGTH <= len(s) <= MAX_ACCOUNT_ID_LENGTH:
        return ""

    lowered = s.lower()
    parts = lowered.split(".")
    if all(re.match(NAMED_ACCOUNT_PART_REGEX, p) for p in parts):
        return lowered
    return ""


def is_valid_account_id(value: str) -> bool:
    """True for a valid implicit or named NEAR account id."""
    return bool(normalize_account_id(value))


def is_implicit_account_id(value: str) -> bool:
    """Strict check: exactly 64 lowercase hex characters."""
    return isinstance(value, str) and bool(re.fullmatch(IMPLICIT_ACCOUNT_REGEX, value))


def parse_raw_amount(value: str) -> int:
    """Parse a base-10 non-negative integer literal.

    Raises:
        ValueError: On signs, whitespace, decimals or empty input.
    """
    if not isinstance(value, str) or not value.isascii() or not value.isdigit():
        raise ValueError(f"Not a non-negative integer literal: {value!r}")
    return int(value)


def to_atomic_amount(amount: str, decimals: int) -> int:
    """Convert a human-readable decimal string to atomic units.

    Refuses amounts with more fractional digits than ``decimals``.
    """
    try:
        d = Decimal(amount)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not d.is_finite() or d < 0:
        raise ValueError(f"Invalid amount: {amount!r}")

    scaled = d.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(scaled)


def near_to_yocto(amount: str) -> int:
    """Convert NEAR (e.g. "0.002") to yoctoNEAR."""
    return to_atomic_amount(amount, NEAR_DECIMALS)


def format_token_amount(raw: int | str, decimals: int, precision: int = 2) -> str:
    """Format an atomic amount for display, truncating to ``precision`` digits."""
    n = int(raw)
    whole, frac = divmod(n, 10**decimals)
    frac_str = str(frac).rjust(decimals, "0")[:precision]
    return f"{whole:,}.{frac_str}" if precision else f"{whole:,}"
