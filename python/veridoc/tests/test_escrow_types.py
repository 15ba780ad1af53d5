"""Tests for the escrow split and settlement result types."""

import pytest

from veridoc.errors import InvalidAmountError
from veridoc.mechanisms.near.escrow.types import (
    LegKind,
    SettlementRequest,
    SettlementResult,
    SplitResult,
    TransactionOutcome,
    calculate_platform_fee,
    calculate_specialist_amount,
    split_escrow_amount,
)


class TestSplitEscrowAmount:
    """Tests for the 15% platform fee split."""

    def test_ten_usdt(self):
        # 10 USDT = 10_000_000 (6 decimals)
        split = split_escrow_amount("10000000")
        assert split.platform_fee_raw == 1_500_000
        assert split.specialist_amount_raw == 8_500_000

    def test_one_unit_goes_to_specialist(self):
        split = split_escrow_amount("1")
        assert split.platform_fee_raw == 0
        assert split.specialist_amount_raw == 1

    def test_zero(self):
        split = split_escrow_amount("0")
        assert split == SplitResult(platform_fee_raw=0, specialist_amount_raw=0)

    def test_dust_accrues_to_specialist(self):
        # floor(7 * 15 / 100) = 1
        split = split_escrow_amount("7")
        assert split.platform_fee_raw == 1
        assert split.specialist_amount_raw == 6

    @pytest.mark.parametrize("amount", [1, 6, 7, 99, 100, 101, 333_333, 10**30 + 17])
    def test_legs_sum_to_total_and_fee_is_floored(self, amount):
        split = split_escrow_amount(str(amount))
        assert split.total_raw == amount
        assert split.platform_fee_raw == amount * 15 // 100
        assert split.specialist_amount_raw >= split.platform_fee_raw

    def test_large_amount_is_exact(self):
        amount = 123_456_789_012_345_678_901_234_567_890
        split = split_escrow_amount(str(amount))
        assert split.platform_fee_raw == amount * 15 // 100

    def test_helpers_agree_with_split(self):
        assert calculate_platform_fee("10000000") == 1_500_000
        assert calculate_specialist_amount("10000000") == 8_500_000

    @pytest.mark.parametrize("bad", ["", "-1", "1.5", " 10", "1e6", "abc", "١٢"])
    def test_rejects_non_integer_literals(self, bad):
        with pytest.raises(InvalidAmountError):
            split_escrow_amount(bad)

    def test_to_dict_uses_strings(self):
        assert split_escrow_amount("100").to_dict() == {
            "platformFeeRaw": "15",
            "specialistAmountRaw": "85",
        }


class TestSettlementRequest:
    def test_from_camel_case(self):
        r = SettlementRequest.from_dict(
            {"_id": "c1", "amountRaw": "100", "specialistAccount": "doc.near"}
        )
        assert r == SettlementRequest("c1", "100", "doc.near")

    def test_from_snake_case(self):
        r = SettlementRequest.from_dict(
            {"id": 7, "amount_raw": 100, "specialist_account": "doc.near"}
        )
        assert r.consultation_id == "7"
        assert r.amount_raw == "100"

    def test_missing_fields(self):
        with pytest.raises(ValueError, match="Missing"):
            SettlementRequest.from_dict({"_id": "c1", "amountRaw": "100"})


class TestSettlementResult:
    def _result(self, *outcomes):
        return SettlementResult(
            consultation_id="c1",
            split=split_escrow_amount("100"),
            outcomes=list(outcomes),
        )

    def test_settled_when_both_legs_confirmed(self):
        result = self._result(
            TransactionOutcome(LegKind.SPECIALIST, "tx-s"),
            TransactionOutcome(LegKind.PLATFORM_FEE, "tx-p"),
        )
        assert result.status == "settled"
        assert result.specialist_tx_hash == "tx-s"
        assert result.platform_tx_hash == "tx-p"

    def test_partial_when_platform_leg_missing(self):
        result = self._result(
            TransactionOutcome(LegKind.SPECIALIST, "tx-s"),
            TransactionOutcome(LegKind.PLATFORM_FEE, None),
        )
        assert result.status == "partially_settled"
        assert result.platform_tx_hash is None

    def test_skipped_platform_leg_counts_as_settled(self):
        result = self._result(
            TransactionOutcome(LegKind.SPECIALIST, "tx-s"),
            TransactionOutcome(LegKind.PLATFORM_FEE, None, skipped=True),
        )
        assert result.status == "settled"

    def test_to_dict(self):
        result = self._result(
            TransactionOutcome(LegKind.SPECIALIST, "tx-s"),
            TransactionOutcome(LegKind.PLATFORM_FEE, "tx-p"),
        )
        d = result.to_dict()
        assert d["consultationId"] == "c1"
        assert d["txHash"] == "tx-s"
        assert d["platformTxHash"] == "tx-p"
        assert d["platformFeeRaw"] == "15"
