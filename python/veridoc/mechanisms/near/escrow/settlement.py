"""Escrow settlement for one consultation.

Executes a two-leg payout from the escrow account:

    Init -> CheckRegistration -> TransferSpecialist -> TransferPlatformFee
         -> NotifyRecordKeeper -> Done

The ledger offers no multi-transfer atomicity and there is no compensation
step: a confirmed leg stays confirmed. Progress is recorded through a
``SettlementGuard`` so a retry resumes after the last confirmed leg.
"""

from __future__ import annotations

import logging

from ....errors import (
    EscrowError,
    InvalidAccountError,
    InvalidAmountError,
    PartialSettlementError,
    RegistrationFailedError,
    RpcError,
    SettlementInProgressError,
    SpecialistTransferFailedError,
    ValidationError,
)
from ..account import NearAccount
from ..constants import USDT_DECIMALS
from ..transactions import create_ft_transfer_action
from ..utils import format_token_amount, normalize_account_id
from .guard import SettlementGuard, SettlementRecord, SettlementState
from .recordkeeper import RecordKeeperClient
from .registration import RegistrationChecker
from .types import (
    LegKind,
    SettlementRequest,
    SettlementResult,
    TransactionOutcome,
    split_escrow_amount,
)

logger = logging.getLogger(__name__)


def _message(exc: Exception) -> str:
    return exc.message if isinstance(exc, EscrowError) else str(exc)


def _may_have_landed(exc: Exception) -> bool:
    """True if a failed transfer might still have reached the ledger.

    Only a transport/RPC failure of the broadcast call itself is ambiguous;
    anything earlier never left the process, and an executed failure reverted.
    """
    cause = exc.__cause__ if isinstance(exc, SpecialistTransferFailedError) else exc
    return isinstance(cause, RpcError) and cause.context.get("method") == "send_tx"


class SettlementOrchestrator:
    """Releases escrowed token funds to a specialist and the platform."""

    def __init__(
        self,
        account: NearAccount,
        registration: RegistrationChecker,
        platform_fee_account_id: str,
        record_keeper: RecordKeeperClient | None = None,
        guard: SettlementGuard | None = None,
    ):
        self._account = account
        self._registration = registration
        self._platform_fee_account_id = platform_fee_account_id
        self._record_keeper = record_keeper
        self._guard = guard or SettlementGuard()

    @property
    def token_contract_id(self) -> str:
        return self._registration.token_contract_id

    @property
    def guard(self) -> SettlementGuard:
        return self._guard

    async def release(self, request: SettlementRequest) -> SettlementResult:
        """Run the settlement state machine for one consultation.

        Raises:
            InvalidAccountError / InvalidAmountError: Before any I/O.
            SettlementInProgressError: Another release holds the consultation,
                or an earlier attempt ended in an unknown state.
            RegistrationFailedError: Nothing moved; safe to retry.
            SpecialistTransferFailedError: Platform leg not attempted.
            PartialSettlementError: Specialist paid, platform fee not.
        """
        cid = request.consultation_id

        # Init
        specialist_account = normalize_account_id(request.specialist_account)
        if not specialist_account:
            raise InvalidAccountError(
                f"specialistAccount {request.specialist_account!r} is not a valid NEAR account",
                consultation_id=cid,
            )
        split = split_escrow_amount(request.amount_raw)
        if split.total_raw == 0:
            raise InvalidAmountError("Nothing to release for a zero amount", consultation_id=cid)

        async with self._guard.hold(cid) as record:
            result = SettlementResult(consultation_id=cid, split=split)

            if record is not None:
                self._check_record_matches(record, request, specialist_account)

                if record.state == SettlementState.COMPLETE:
                    logger.info("Consultation %s already settled; returning recorded outcome", cid)
                    result.outcomes = [
                        TransactionOutcome(LegKind.SPECIALIST, record.specialist_tx_hash),
                        TransactionOutcome(
                            LegKind.PLATFORM_FEE,
                            record.platform_tx_hash,
                            skipped=split.platform_fee_raw == 0,
                        ),
                    ]
                    result.replayed = True
                    return result

                if record.state == SettlementState.IN_FLIGHT:
                    raise SettlementInProgressError(
                        f"Consultation {cid} has an unconfirmed specialist transfer; "
                        "reconcile against the ledger before retrying",
                        consultation_id=cid,
                        leg=LegKind.SPECIALIST.value,
                    )

                if record.state == SettlementState.PLATFORM_IN_FLIGHT:
                    raise SettlementInProgressError(
                        f"Consultation {cid} has an unconfirmed platform fee transfer; "
                        "reconcile against the ledger before retrying",
                        consultation_id=cid,
                        leg=LegKind.PLATFORM_FEE.value,
                    )

            if record is not None and record.state == SettlementState.SPECIALIST_PAID:
                logger.info(
                    "Consultation %s specialist leg already paid (%s); resuming at platform fee",
                    cid,
                    record.specialist_tx_hash,
                )
                result.outcomes.append(
                    TransactionOutcome(LegKind.SPECIALIST, record.specialist_tx_hash)
                )
            else:
                await self._ensure_registration(cid, specialist_account)
                specialist_hash = await self._transfer_specialist(request, specialist_account, split.specialist_amount_raw)
                result.outcomes.append(TransactionOutcome(LegKind.SPECIALIST, specialist_hash))

            try:
                platform_outcome = await self._transfer_platform_fee(request, specialist_account, result)
            except Exception as e:
                result.outcomes.append(TransactionOutcome(LegKind.PLATFORM_FEE, None))
                logger.error(
                    "Consultation %s partially settled: specialist paid in %s, platform fee of %s failed: %s",
                    cid,
                    result.specialist_tx_hash,
                    split.platform_fee_raw,
                    e,
                )
                await self._notify(result)
                raise PartialSettlementError(
                    f"Platform fee transfer failed after specialist payout: {_message(e)}",
                    consultation_id=cid,
                    result=result,
                    cause=e,
                ) from e

            result.outcomes.append(platform_outcome)
            await self._guard.mark(
                cid,
                SettlementState.COMPLETE,
                request.amount_raw,
                specialist_account,
                specialist_tx_hash=result.specialist_tx_hash,
                platform_tx_hash=result.platform_tx_hash,
            )
            logger.info(
                "Consultation %s settled: %s USDT to %s in %s, %s USDT fee in %s",
                cid,
                format_token_amount(split.specialist_amount_raw, USDT_DECIMALS),
                specialist_account,
                result.specialist_tx_hash,
                format_token_amount(split.platform_fee_raw, USDT_DECIMALS),
                result.platform_tx_hash,
            )

        await self._notify(result)
        return result

    # --- Steps ---

    async def _ensure_registration(self, cid: str, specialist_account: str) -> None:
        try:
            if await self._registration.has_registration(specialist_account):
                return
            logger.info("Registering %s on %s for consultation %s", specialist_account, self.token_contract_id, cid)
            await self._account.sign_and_send_transaction(
                self.token_contract_id,
                [self._registration.build_registration_action(specialist_account)],
            )
        except (EscrowError, ValueError) as e:
            logger.error("Consultation %s registration of %s failed: %s", cid, specialist_account, e)
            raise RegistrationFailedError(
                f"Storage registration failed for {specialist_account}: {_message(e)}",
                consultation_id=cid,
                leg="registration",
            ) from e

    async def _transfer_specialist(
        self,
        request: SettlementRequest,
        specialist_account: str,
        amount_raw: int,
    ) -> str:
        cid = request.consultation_id
        await self._guard.mark(cid, SettlementState.IN_FLIGHT, request.amount_raw, specialist_account)
        try:
            tx = await self._account.sign_and_send_transaction(
                self.token_contract_id,
                [create_ft_transfer_action(amount_raw, specialist_account)],
            )
        except Exception as e:
            logger.error(
                "Consultation %s leg %s (%s to %s) failed: %s",
                cid,
                LegKind.SPECIALIST.value,
                amount_raw,
                specialist_account,
                e,
            )
            if not _may_have_landed(e):
                await self._guard.reset(cid)
            raise SpecialistTransferFailedError(
                f"Specialist transfer failed: {_message(e)}",
                consultation_id=cid,
                leg=LegKind.SPECIALIST.value,
            ) from e

        await self._guard.mark(
            cid,
            SettlementState.SPECIALIST_PAID,
            request.amount_raw,
            specialist_account,
            specialist_tx_hash=tx.tx_hash,
        )
        logger.info("Consultation %s leg %s confirmed: %s", cid, LegKind.SPECIALIST.value, tx.tx_hash)
        return tx.tx_hash

    async def _transfer_platform_fee(
        self,
        request: SettlementRequest,
        specialist_account: str,
        result: SettlementResult,
    ) -> TransactionOutcome:
        cid = request.consultation_id
        fee = result.split.platform_fee_raw
        if fee == 0:
            # NEP-141 rejects zero-amount transfers
            logger.info("Consultation %s platform fee rounds to zero; leg skipped", cid)
            return TransactionOutcome(LegKind.PLATFORM_FEE, None, skipped=True)

        specialist_hash = result.specialist_tx_hash
        await self._guard.mark(
            cid,
            SettlementState.PLATFORM_IN_FLIGHT,
            request.amount_raw,
            specialist_account,
            specialist_tx_hash=specialist_hash,
        )
        try:
            tx = await self._account.sign_and_send_transaction(
                self.token_contract_id,
                [create_ft_transfer_action(fee, self._platform_fee_account_id)],
            )
        except Exception as e:
            if not _may_have_landed(e):
                await self._guard.mark(
                    cid,
                    SettlementState.SPECIALIST_PAID,
                    request.amount_raw,
                    specialist_account,
                    specialist_tx_hash=specialist_hash,
                )
            raise
        logger.info("Consultation %s leg %s confirmed: %s", cid, LegKind.PLATFORM_FEE.value, tx.tx_hash)
        return TransactionOutcome(LegKind.PLATFORM_FEE, tx.tx_hash)

    async def _notify(self, result: SettlementResult) -> None:
        if self._record_keeper is None:
            return
        accepted = await self._record_keeper.notify_release(result)
        if not accepted:
            logger.warning(
                "Consultation %s outcome not mirrored to record keeper (status %s, specialist %s, platform %s)",
                result.consultation_id,
                result.status,
                result.specialist_tx_hash,
                result.platform_tx_hash,
            )

    @staticmethod
    def _check_record_matches(
        record: SettlementRecord,
        request: SettlementRequest,
        specialist_account: str,
    ) -> None:
        if record.amount_raw != request.amount_raw or record.specialist_account != specialist_account:
            raise ValidationError(
                f"Consultation {request.consultation_id} was already released with a different "
                "amount or specialist account",
                consultation_id=request.consultation_id,
            )
