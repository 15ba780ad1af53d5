"""Per-consultation idempotency guard for escrow releases.

A release takes an in-process lock for its consultation and keeps a state
record that is written before each transfer is broadcast:

    Init -> InFlight -> SpecialistPaid -> PlatformInFlight -> Complete

A later release for the same consultation reads that record and never
re-enters a leg that already went out.

The lock only excludes releases within one process, so the service runs as
a single worker. Store calls run in the default executor so file I/O and
fsync stay off the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Protocol

from ....errors import SettlementInProgressError

logger = logging.getLogger(__name__)


class SettlementState(str, Enum):
    INIT = "init"
    IN_FLIGHT = "in_flight"
    SPECIALIST_PAID = "specialist_paid"
    PLATFORM_IN_FLIGHT = "platform_in_flight"
    COMPLETE = "complete"


@dataclass
class SettlementRecord:
    consultation_id: str
    state: SettlementState
    amount_raw: str
    specialist_account: str
    specialist_tx_hash: str | None = None
    platform_tx_hash: str | None = None
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SettlementRecord":
        return cls(
            consultation_id=data["consultation_id"],
            state=SettlementState(data["state"]),
            amount_raw=data["amount_raw"],
            specialist_account=data["specialist_account"],
            specialist_tx_hash=data.get("specialist_tx_hash"),
            platform_tx_hash=data.get("platform_tx_hash"),
            updated_at=int(data.get("updated_at") or 0),
        )


class SettlementStateStore(Protocol):
    """Durable map of consultation id to its settlement record."""

    def get(self, consultation_id: str) -> SettlementRecord | None:
        ...

    def put(self, record: SettlementRecord) -> None:
        ...

    def delete(self, consultation_id: str) -> None:
        ...


class InMemorySettlementStore:
    """Process-local store; state is lost on restart."""

    def __init__(self) -> None:
        self._records: dict[str, SettlementRecord] = {}

    def get(self, consultation_id: str) -> SettlementRecord | None:
        return self._records.get(consultation_id)

    def put(self, record: SettlementRecord) -> None:
        self._records[record.consultation_id] = record

    def delete(self, consultation_id: str) -> None:
        self._records.pop(consultation_id, None)


class JsonFileSettlementStore:
    """JSON file store; every write replaces the file atomically."""

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def _load(self) -> dict[str, Any]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".tmp_", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def get(self, consultation_id: str) -> SettlementRecord | None:
        with self._lock:
            raw = self._load().get(consultation_id)
        return SettlementRecord.from_dict(raw) if raw else None

    def put(self, record: SettlementRecord) -> None:
        with self._lock:
            data = self._load()
            data[record.consultation_id] = record.to_dict()
            self._save(data)

    def delete(self, consultation_id: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(consultation_id, None) is not None:
                self._save(data)


class SettlementGuard:
    """Mutual exclusion plus durable progress records per consultation."""

    def __init__(self, store: SettlementStateStore | None = None):
        self._store = store or InMemorySettlementStore()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> SettlementStateStore:
        return self._store

    @asynccontextmanager
    async def hold(self, consultation_id: str) -> AsyncIterator[SettlementRecord | None]:
        """Exclusive section for one consultation; yields its current record.

        Raises:
            SettlementInProgressError: If another release for the same
                consultation holds the lock.
        """
        lock = self._locks.setdefault(consultation_id, asyncio.Lock())
        if lock.locked():
            raise SettlementInProgressError(
                f"Settlement for consultation {consultation_id} is already running",
                consultation_id=consultation_id,
            )
        async with lock:
            try:
                yield await self._run(self._store.get, consultation_id)
            finally:
                self._locks.pop(consultation_id, None)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def mark(
        self,
        consultation_id: str,
        state: SettlementState,
        amount_raw: str,
        specialist_account: str,
        specialist_tx_hash: str | None = None,
        platform_tx_hash: str | None = None,
    ) -> SettlementRecord:
        record = SettlementRecord(
            consultation_id=consultation_id,
            state=state,
            amount_raw=amount_raw,
            specialist_account=specialist_account,
            specialist_tx_hash=specialist_tx_hash,
            platform_tx_hash=platform_tx_hash,
            updated_at=int(time.time()),
        )
        await self._run(self._store.put, record)
        logger.debug("Consultation %s -> %s", consultation_id, state.value)
        return record

    async def reset(self, consultation_id: str) -> None:
        """Forget a consultation whose attempt provably moved no funds."""
        await self._run(self._store.delete, consultation_id)
