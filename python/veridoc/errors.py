"""Error taxonomy for escrow settlement and account funding.

Library code raises these; only the HTTP layer turns them into status codes.
"""

from __future__ import annotations

from typing import Any


class EscrowError(Exception):
    """Base class for all settlement and funding errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


# --- Configuration ---


class ConfigurationError(EscrowError):
    """A required secret, key or URL is absent."""


class FundingNotConfiguredError(ConfigurationError):
    """Neither the direct funding account nor a faucet is usable."""


# --- Validation ---


class ValidationError(EscrowError):
    """Malformed request body or identifier."""


class InvalidAmountError(ValidationError):
    """Amount is not a non-negative integer literal."""


class InvalidAccountError(ValidationError):
    """Not a syntactically valid ledger account identifier."""


class InvalidAccountIdError(ValidationError):
    """Not a 64-character lowercase hex implicit account."""


class InvalidDelegateError(ValidationError):
    """Signed delegate is malformed or moves funds anywhere but escrow."""


# --- Auth ---


class AuthError(EscrowError):
    """Shared secret mismatch."""


# --- Upstream ---


class UpstreamError(EscrowError):
    """Ledger RPC, remote signer or faucet failure."""


class RpcError(UpstreamError):
    pass


class SigningError(UpstreamError):
    pass


class NoAccessKeyError(UpstreamError):
    pass


class TransactionFailedError(UpstreamError):
    """The ledger executed the transaction and reported a failure."""

    def __init__(self, message: str, tx_hash: str | None = None, **context: Any):
        super().__init__(message, tx_hash=tx_hash, **context)
        self.tx_hash = tx_hash


class FaucetError(UpstreamError):
    pass


class RegistrationFailedError(UpstreamError):
    """Storage registration failed; no funds have moved."""


class SpecialistTransferFailedError(UpstreamError):
    """Specialist leg failed; the platform-fee leg was not attempted."""


# --- Settlement state ---


class PartialSettlementError(EscrowError):
    """Specialist leg confirmed but the platform-fee leg failed.

    The specialist transfer is irreversible. Operators complete the missing
    leg by re-running the release for the same consultation, which resumes
    at the platform-fee transfer. If the fee broadcast itself timed out the
    retry answers ``SettlementInProgressError`` until the ledger is checked.
    """

    def __init__(self, message: str, consultation_id: str, result: Any, cause: Exception | None = None):
        super().__init__(message, consultation_id=consultation_id, leg="platform_fee")
        self.consultation_id = consultation_id
        self.result = result
        self.cause = cause


class SettlementInProgressError(EscrowError):
    """Another release for the same consultation is running or was interrupted."""
