"""Tests for the settlement guard and its state stores."""

import asyncio
import json

import pytest

from veridoc.errors import SettlementInProgressError
from veridoc.mechanisms.near.escrow.guard import (
    InMemorySettlementStore,
    JsonFileSettlementStore,
    SettlementGuard,
    SettlementRecord,
    SettlementState,
)


def _record(cid="c1", state=SettlementState.SPECIALIST_PAID):
    return SettlementRecord(
        consultation_id=cid,
        state=state,
        amount_raw="100",
        specialist_account="doc.near",
        specialist_tx_hash="tx-s",
    )


class TestJsonFileSettlementStore:
    def test_put_get_delete(self, tmp_path):
        store = JsonFileSettlementStore(str(tmp_path / "state" / "settlements.json"))
        assert store.get("c1") is None

        store.put(_record())
        loaded = store.get("c1")
        assert loaded.state == SettlementState.SPECIALIST_PAID
        assert loaded.specialist_tx_hash == "tx-s"

        store.delete("c1")
        assert store.get("c1") is None

    def test_survives_new_instance(self, tmp_path):
        path = str(tmp_path / "settlements.json")
        JsonFileSettlementStore(path).put(_record())
        assert JsonFileSettlementStore(path).get("c1").amount_raw == "100"

    def test_file_is_plain_json(self, tmp_path):
        path = tmp_path / "settlements.json"
        JsonFileSettlementStore(str(path)).put(_record(state=SettlementState.COMPLETE))
        data = json.loads(path.read_text())
        assert data["c1"]["state"] == "complete"
        assert [p.name for p in tmp_path.iterdir()] == ["settlements.json"]


class TestSettlementGuard:
    def test_hold_yields_current_record(self):
        store = InMemorySettlementStore()
        store.put(_record())
        guard = SettlementGuard(store)

        async def run():
            async with guard.hold("c1") as record:
                return record

        assert asyncio.run(run()).specialist_tx_hash == "tx-s"

    def test_second_holder_is_rejected(self):
        guard = SettlementGuard()

        async def run():
            async with guard.hold("c1"):
                with pytest.raises(SettlementInProgressError):
                    async with guard.hold("c1"):
                        pass
                # other consultations are unaffected
                async with guard.hold("c2") as record:
                    assert record is None

        asyncio.run(run())

    def test_lock_released_after_error(self):
        guard = SettlementGuard()

        async def run():
            with pytest.raises(RuntimeError):
                async with guard.hold("c1"):
                    raise RuntimeError("boom")
            async with guard.hold("c1") as record:
                return record

        assert asyncio.run(run()) is None

    def test_mark_and_reset(self):
        guard = SettlementGuard()

        async def run():
            record = await guard.mark("c1", SettlementState.IN_FLIGHT, "100", "doc.near")
            state = guard.store.get("c1").state
            await guard.reset("c1")
            return record, state

        record, state = asyncio.run(run())
        assert record.updated_at > 0
        assert state == SettlementState.IN_FLIGHT
        assert guard.store.get("c1") is None

    def test_file_store_through_guard(self, tmp_path):
        path = str(tmp_path / "settlements.json")
        guard = SettlementGuard(JsonFileSettlementStore(path))

        async def run():
            async with guard.hold("c1") as record:
                assert record is None
                await guard.mark("c1", SettlementState.PLATFORM_IN_FLIGHT, "100", "doc.near", specialist_tx_hash="tx-s")
            async with guard.hold("c1") as record:
                return record

        record = asyncio.run(run())
        assert record.state == SettlementState.PLATFORM_IN_FLIGHT
        # a fresh process sees the same record
        assert JsonFileSettlementStore(path).get("c1").specialist_tx_hash == "tx-s"
