"""Release every consultation the record keeper reports as due."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ....errors import EscrowError, PartialSettlementError
from .recordkeeper import RecordKeeperClient
from .settlement import SettlementOrchestrator
from .types import SettlementRequest

logger = logging.getLogger(__name__)


@dataclass
class BatchReleaseResult:
    total: int = 0
    released: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "released": len(self.released),
            "total": self.total,
            "releasedConsultations": self.released,
        }
        if self.errors:
            body["errors"] = self.errors
        return body


async def release_pending(
    orchestrator: SettlementOrchestrator,
    record_keeper: RecordKeeperClient,
) -> BatchReleaseResult:
    """Release pending consultations one after another.

    A failing consultation is recorded and the batch moves on.

    Raises:
        UpstreamError: If the pending list cannot be fetched.
    """
    pending = await record_keeper.list_pending_releases()
    result = BatchReleaseResult(total=len(pending))

    for record in pending:
        if not isinstance(record, dict):
            result.errors.append({"consultationId": "unknown", "error": "Malformed pending record"})
            continue
        consultation_id = str(record.get("_id") or record.get("id") or "unknown")
        try:
            request = SettlementRequest.from_dict(record)
        except ValueError as e:
            result.errors.append({"consultationId": consultation_id, "error": str(e)})
            continue

        try:
            settled = await orchestrator.release(request)
        except PartialSettlementError as e:
            result.errors.append(
                {
                    "consultationId": request.consultation_id,
                    "error": e.message,
                    "partial": True,
                    "specialistTxHash": e.result.specialist_tx_hash,
                }
            )
            continue
        except EscrowError as e:
            logger.error("Failed to release %s: %s", request.consultation_id, e.message)
            result.errors.append({"consultationId": request.consultation_id, "error": e.message})
            continue
        except Exception as e:
            logger.exception("Unexpected error releasing %s", request.consultation_id)
            result.errors.append({"consultationId": request.consultation_id, "error": str(e)})
            continue

        result.released.append(
            {
                "consultationId": request.consultation_id,
                "txHash": settled.specialist_tx_hash or "unknown",
                "platformTxHash": settled.platform_tx_hash,
            }
        )

    logger.info("Batch release: %d of %d released", len(result.released), result.total)
    return result
