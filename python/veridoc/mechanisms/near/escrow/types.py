"""Types for NEAR escrow settlement."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ....errors import InvalidAmountError
from ..utils import parse_raw_amount
from .constants import (
    LEG_PLATFORM_FEE,
    LEG_SPECIALIST,
    PLATFORM_FEE_PERCENTAGE,
    STATUS_PARTIAL,
    STATUS_SETTLED,
)


@dataclass(frozen=True)
class SplitResult:
    """Platform fee and specialist share of an escrowed amount (raw units)."""

    platform_fee_raw: int
    specialist_amount_raw: int

    @property
    def total_raw(self) -> int:
        return self.platform_fee_raw + self.specialist_amount_raw

    def to_dict(self) -> dict[str, str]:
        return {
            "platformFeeRaw": str(self.platform_fee_raw),
            "specialistAmountRaw": str(self.specialist_amount_raw),
        }


def _parse_amount(amount_raw: str) -> int:
    try:
        return parse_raw_amount(amount_raw)
    except ValueError as e:
        raise InvalidAmountError(str(e), amount_raw=amount_raw) from e


def calculate_platform_fee(amount_raw: str) -> int:
    """floor(amount * 15 / 100)."""
    total = _parse_amount(amount_raw)
    return (total * PLATFORM_FEE_PERCENTAGE) // 100


def calculate_specialist_amount(amount_raw: str) -> int:
    """Whatever the platform fee leaves, so rounding dust goes to the specialist."""
    return _parse_amount(amount_raw) - calculate_platform_fee(amount_raw)


def split_escrow_amount(amount_raw: str) -> SplitResult:
    """Split a raw token amount into (platform fee, specialist amount).

    Integer arithmetic only. The fee is truncated, so any remainder of the
    percentage division accrues to the specialist leg.

    Raises:
        InvalidAmountError: If ``amount_raw`` is not a non-negative integer literal.
    """
    total = _parse_amount(amount_raw)
    fee = (total * PLATFORM_FEE_PERCENTAGE) // 100
    return SplitResult(platform_fee_raw=fee, specialist_amount_raw=total - fee)


@dataclass(frozen=True)
class SettlementRequest:
    """One consultation's escrow release."""

    consultation_id: str
    amount_raw: str
    specialist_account: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SettlementRequest":
        """Accept camelCase or snake_case keys (record keeper payloads use both)."""
        consultation_id = data.get("consultationId") or data.get("_id") or data.get("id")
        amount_raw = data.get("amountRaw") or data.get("amount_raw")
        specialist_account = data.get("specialistAccount") or data.get("specialist_account")
        if not consultation_id or not amount_raw or not specialist_account:
            raise ValueError("Missing consultation id, amount_raw or specialistAccount")
        return cls(
            consultation_id=str(consultation_id),
            amount_raw=str(amount_raw),
            specialist_account=str(specialist_account),
        )


class LegKind(str, Enum):
    SPECIALIST = LEG_SPECIALIST
    PLATFORM_FEE = LEG_PLATFORM_FEE


@dataclass(frozen=True)
class TransactionOutcome:
    """One transfer leg; ``tx_hash`` is set only if the ledger confirmed it.

    A leg whose amount is zero is ``skipped``: nothing is owed, nothing sent.
    """

    leg: LegKind
    tx_hash: str | None = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.tx_hash is not None or self.skipped


@dataclass
class SettlementResult:
    consultation_id: str
    split: SplitResult
    outcomes: list[TransactionOutcome] = field(default_factory=list)
    replayed: bool = False

    def outcome_for(self, leg: LegKind) -> TransactionOutcome | None:
        for outcome in self.outcomes:
            if outcome.leg == leg:
                return outcome
        return None

    def tx_hash_for(self, leg: LegKind) -> str | None:
        outcome = self.outcome_for(leg)
        return outcome.tx_hash if outcome else None

    @property
    def specialist_tx_hash(self) -> str | None:
        return self.tx_hash_for(LegKind.SPECIALIST)

    @property
    def platform_tx_hash(self) -> str | None:
        return self.tx_hash_for(LegKind.PLATFORM_FEE)

    @property
    def status(self) -> str:
        legs = [self.outcome_for(LegKind.SPECIALIST), self.outcome_for(LegKind.PLATFORM_FEE)]
        if all(outcome is not None and outcome.succeeded for outcome in legs):
            return STATUS_SETTLED
        return STATUS_PARTIAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "consultationId": self.consultation_id,
            "status": self.status,
            "txHash": self.specialist_tx_hash,
            "specialistTxHash": self.specialist_tx_hash,
            "platformTxHash": self.platform_tx_hash,
            **self.split.to_dict(),
        }
