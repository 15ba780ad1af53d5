"""NEAR escrow settlement.

Releases an escrowed USDT payment in two legs: 85% to the specialist,
15% platform fee, with storage registration of the specialist first.
Deposits into escrow arrive as relayed NEP-366 meta-transactions.
"""

from veridoc.mechanisms.near.escrow.batch import BatchReleaseResult, release_pending
from veridoc.mechanisms.near.escrow.deposit import DepositResult, EscrowDepositRelay
from veridoc.mechanisms.near.escrow.guard import (
    InMemorySettlementStore,
    JsonFileSettlementStore,
    SettlementGuard,
    SettlementRecord,
    SettlementState,
)
from veridoc.mechanisms.near.escrow.recordkeeper import RecordKeeperClient
from veridoc.mechanisms.near.escrow.register import (
    create_deposit_relay,
    create_escrow_signer,
    create_settlement_orchestrator,
)
from veridoc.mechanisms.near.escrow.registration import RegistrationChecker
from veridoc.mechanisms.near.escrow.settlement import SettlementOrchestrator
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

__all__ = [
    # Types
    "LegKind",
    "SettlementRequest",
    "SettlementResult",
    "SplitResult",
    "TransactionOutcome",
    "calculate_platform_fee",
    "calculate_specialist_amount",
    "split_escrow_amount",
    # Components
    "RegistrationChecker",
    "RecordKeeperClient",
    "SettlementOrchestrator",
    "release_pending",
    "BatchReleaseResult",
    "EscrowDepositRelay",
    "DepositResult",
    # Idempotency
    "SettlementGuard",
    "SettlementRecord",
    "SettlementState",
    "InMemorySettlementStore",
    "JsonFileSettlementStore",
    # Construction
    "create_deposit_relay",
    "create_escrow_signer",
    "create_settlement_orchestrator",
]
