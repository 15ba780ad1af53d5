"""Tests for the record keeper client and batch release."""

import asyncio
import json

import httpx
import pytest

from veridoc.errors import UpstreamError
from veridoc.mechanisms.near.account import TransactionResult
from veridoc.mechanisms.near.escrow import (
    RecordKeeperClient,
    RegistrationChecker,
    SettlementOrchestrator,
    release_pending,
    split_escrow_amount,
)
from veridoc.mechanisms.near.escrow.types import LegKind, SettlementResult, TransactionOutcome

BASE_URL = "https://records.test"


def _with_client(handler, fn):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fn(RecordKeeperClient(BASE_URL, client=client))

    return asyncio.run(run())


def _result():
    return SettlementResult(
        consultation_id="c1",
        split=split_escrow_amount("100"),
        outcomes=[
            TransactionOutcome(LegKind.SPECIALIST, "tx-s"),
            TransactionOutcome(LegKind.PLATFORM_FEE, "tx-p"),
        ],
    )


class TestRecordKeeperClient:
    def test_notify_release(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        assert _with_client(handler, lambda rk: rk.notify_release(_result())) is True
        assert seen["url"] == "https://records.test/api/consultations/c1/release"
        assert seen["body"]["releaseTxHash"] == "tx-s"
        assert seen["body"]["platformTxHash"] == "tx-p"
        assert seen["body"]["status"] == "settled"
        assert seen["body"]["releasedAt"]

    def test_notify_release_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("down")

        assert _with_client(handler, lambda rk: rk.notify_release(_result())) is False

    def test_notify_release_rejected(self):
        def handler(request):
            return httpx.Response(500)

        assert _with_client(handler, lambda rk: rk.notify_release(_result())) is False

    def test_list_pending(self):
        def handler(request):
            assert request.url.path == "/api/consultations/pending-release"
            return httpx.Response(200, json={"data": [{"_id": "c1"}]})

        assert _with_client(handler, lambda rk: rk.list_pending_releases()) == [{"_id": "c1"}]

    def test_list_pending_error(self):
        def handler(request):
            return httpx.Response(503, json={"message": "maintenance"})

        with pytest.raises(UpstreamError, match="503"):
            _with_client(handler, lambda rk: rk.list_pending_releases())

    def test_confirm_payment(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"status": "paid"}})

        data = _with_client(handler, lambda rk: rk.confirm_payment("c1", "tx-d", "10000000"))

        assert data == {"status": "paid"}
        assert seen["url"] == "https://records.test/api/consultations/c1/confirm-payment"
        assert seen["body"]["txHash"] == "tx-d"
        assert seen["body"]["amountRaw"] == "10000000"
        assert seen["body"]["paidAt"]

    def test_confirm_payment_error_keeps_status(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Consultation not found", "error": "NOT_FOUND"})

        with pytest.raises(UpstreamError, match="Consultation not found") as exc_info:
            _with_client(handler, lambda rk: rk.confirm_payment("c9", "tx-d", "1"))
        assert exc_info.value.context["status_code"] == 404
        assert exc_info.value.context["details"] == "NOT_FOUND"

    def test_confirm_payment_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down")

        with pytest.raises(UpstreamError, match="Failed to confirm payment") as exc_info:
            _with_client(handler, lambda rk: rk.confirm_payment("c1", "tx-d", "1"))
        assert "status_code" not in exc_info.value.context


class FakeProvider:
    def __init__(self, broken_account=None):
        self._broken_account = broken_account

    async def call_function(self, contract_id, method_name, args):
        if args["account_id"] == self._broken_account:
            raise KeyError("stale cache entry")
        return {"total": "1"}


class FakeAccount:
    account_id = "escrow.near"

    def __init__(self, failing_target=None):
        self.calls = []
        self._failing_target = failing_target

    async def sign_and_send_transaction(self, receiver_id, actions):
        target = actions[0].json_args()["receiver_id"]
        self.calls.append(target)
        if target == self._failing_target:
            raise RuntimeError("ledger rejected")
        return TransactionResult(tx_hash=f"tx-{len(self.calls)}")


class FakeRecordKeeper:
    def __init__(self, pending):
        self._pending = pending
        self.notified = []

    async def list_pending_releases(self):
        return self._pending

    async def notify_release(self, result):
        self.notified.append(result.consultation_id)
        return True


class TestReleasePending:
    def _orchestrator(self, account, keeper, provider=None):
        return SettlementOrchestrator(
            account=account,
            registration=RegistrationChecker(provider or FakeProvider(), "usdt.tether-token.near"),
            platform_fee_account_id="fees.near",
            record_keeper=keeper,
        )

    def test_releases_each_and_collects_errors(self):
        keeper = FakeRecordKeeper(
            [
                {"_id": "c1", "amountRaw": "100", "specialistAccount": "doc.near"},
                {"_id": "c2", "amountRaw": "100"},
                {"_id": "c3", "amountRaw": "200", "specialistAccount": "bad.near"},
                {"_id": "c4", "amountRaw": "300", "specialistAccount": "nurse.near"},
            ]
        )
        account = FakeAccount(failing_target="bad.near")

        batch = asyncio.run(release_pending(self._orchestrator(account, keeper), keeper))
        body = batch.to_dict()

        assert body["success"] is True
        assert body["total"] == 4
        assert body["released"] == 2
        assert [r["consultationId"] for r in body["releasedConsultations"]] == ["c1", "c4"]
        assert [e["consultationId"] for e in body["errors"]] == ["c2", "c3"]
        assert keeper.notified == ["c1", "c4"]

    def test_unexpected_error_keeps_earlier_releases(self):
        keeper = FakeRecordKeeper(
            [
                {"_id": "c1", "amountRaw": "100", "specialistAccount": "doc.near"},
                {"_id": "c2", "amountRaw": "100", "specialistAccount": "nurse.near"},
                {"_id": "c3", "amountRaw": "100", "specialistAccount": "vet.near"},
            ]
        )
        account = FakeAccount()
        orchestrator = self._orchestrator(account, keeper, FakeProvider(broken_account="nurse.near"))

        batch = asyncio.run(release_pending(orchestrator, keeper))

        assert [r["consultationId"] for r in batch.released] == ["c1", "c3"]
        assert batch.errors == [{"consultationId": "c2", "error": "'stale cache entry'"}]
        assert account.calls == ["doc.near", "fees.near", "vet.near", "fees.near"]

    def test_partial_failures_are_flagged(self):
        keeper = FakeRecordKeeper([{"_id": "c1", "amountRaw": "100", "specialistAccount": "doc.near"}])
        account = FakeAccount(failing_target="fees.near")

        batch = asyncio.run(release_pending(self._orchestrator(account, keeper), keeper))

        assert batch.released == []
        assert batch.errors[0]["partial"] is True
        assert batch.errors[0]["specialistTxHash"] == "tx-1"

    def test_empty_batch(self):
        keeper = FakeRecordKeeper([])
        batch = asyncio.run(release_pending(self._orchestrator(FakeAccount(), keeper), keeper))
        assert batch.to_dict() == {"success": True, "released": 0, "total": 0, "releasedConsultations": []}
