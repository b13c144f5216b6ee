"""Fee transaction manager — applies calculations and manages their lifecycle.

A calculation is only a quote. Applying it creates a FeeTransaction,
which can then have its commissions paid out, be disputed, or be
refunded. Payout runs (`process_payouts`) pool pending commissions of
every applied transaction so recipient minimums are met across
projects. On refund every commission on the transaction is refunded
with it.

The manager is a pure state machine — no side effects. Audit event
logging is handled by the service layer.

State machine:
    APPLIED → REFUNDED        (fees refunded)
    APPLIED → DISPUTED        (fees disputed)
    DISPUTED → APPLIED        (dispute rejected)
    DISPUTED → REFUNDED       (dispute upheld)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from marketfee.fees.distribution import mark_distributed, mark_refunded, plan_payouts
from marketfee.models.fees import FeeCalculationResult
from marketfee.models.transactions import (
    FeeTransaction,
    PayoutBatch,
    TransactionState,
)


class FeeTransactionManager:
    """Manages fee transactions for applied calculations.

    Usage:
        manager = FeeTransactionManager()
        tx = manager.apply_fees(result)
        batches = manager.process_commissions(tx.transaction_id)
        tx = manager.refund_fees(tx.transaction_id, "project cancelled")
    """

    def __init__(self) -> None:
        self._transactions: Dict[str, FeeTransaction] = {}

    def apply_fees(
        self,
        calculation: FeeCalculationResult,
        transaction_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FeeTransaction:
        """Create an APPLIED transaction from a calculation.

        Args:
            calculation: The fee calculation to apply.
            transaction_id: Optional explicit ID (auto-generated if absent).
            now: Current time (defaults to UTC now).
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if transaction_id is None:
            transaction_id = f"tx_{uuid4().hex[:12]}"
        if transaction_id in self._transactions:
            raise ValueError(f"Transaction ID already exists: {transaction_id}")

        record = FeeTransaction(
            transaction_id=transaction_id,
            project_id=calculation.request.project_id,
            user_id=calculation.request.user_id,
            calculation=calculation,
            commissions=calculation.commissions,
            state=TransactionState.APPLIED,
            processed_utc=now,
        )
        self._transactions[transaction_id] = record
        return record

    def process_commissions(
        self,
        transaction_id: str,
    ) -> List[PayoutBatch]:
        """Pay out every payable commission batch on an APPLIED transaction.

        Batches under the recipient's minimum stay pending.

        Returns:
            All planned batches, payable or not.
        """
        record = self._get(transaction_id)
        if record.state != TransactionState.APPLIED:
            raise ValueError(
                f"Cannot process commissions for transaction in state "
                f"{record.state.value}"
            )
        batches = plan_payouts(record.commissions)
        paid_ids = [
            cid for batch in batches if batch.payable for cid in batch.commission_ids
        ]
        record.commissions = mark_distributed(record.commissions, paid_ids)
        return batches

    def process_payouts(self) -> List[PayoutBatch]:
        """Pay out pending commissions pooled across all APPLIED transactions.

        Commissions owed to the same recipient by different transactions
        share a batch, so small commissions are paid once together they
        reach the recipient's minimum. Disputed and refunded transactions
        are left out.

        Returns:
            All planned batches, payable or not.
        """
        applied = self.transactions(TransactionState.APPLIED)
        batches = plan_payouts(c for t in applied for c in t.commissions)
        paid_ids = [
            cid for batch in batches if batch.payable for cid in batch.commission_ids
        ]
        for record in applied:
            record.commissions = mark_distributed(record.commissions, paid_ids)
        return batches

    def dispute_fees(
        self,
        transaction_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> FeeTransaction:
        """Transitions: APPLIED → DISPUTED"""
        if not reason or not reason.strip():
            raise ValueError("A dispute requires a reason")
        record = self._get(transaction_id)
        if now is None:
            now = datetime.now(timezone.utc)
        record.transition_to(TransactionState.DISPUTED)
        record.disputed_utc = now
        record.reason = reason
        return record

    def resolve_dispute(
        self,
        transaction_id: str,
        refund: bool,
        now: Optional[datetime] = None,
    ) -> FeeTransaction:
        """Resolve a dispute: refund the fees, or reinstate the transaction.

        Transitions: DISPUTED → REFUNDED | DISPUTED → APPLIED
        """
        record = self._get(transaction_id)
        if record.state != TransactionState.DISPUTED:
            raise ValueError(
                f"Transaction {transaction_id} is not disputed "
                f"(state: {record.state.value})"
            )
        if refund:
            return self._refund(record, record.reason or "dispute upheld", now)
        record.transition_to(TransactionState.APPLIED)
        return record

    def refund_fees(
        self,
        transaction_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> FeeTransaction:
        """Transitions: APPLIED → REFUNDED"""
        if not reason or not reason.strip():
            raise ValueError("A refund requires a reason")
        record = self._get(transaction_id)
        if record.state != TransactionState.APPLIED:
            raise ValueError(
                f"Cannot refund transaction in state {record.state.value}; "
                f"disputed transactions are refunded by resolving the dispute"
            )
        return self._refund(record, reason, now)

    def discard(self, transaction_id: str) -> None:
        """Forget a transaction. Used by the service layer to roll back
        an application whose audit record could not be written."""
        self._transactions.pop(transaction_id, None)

    def get(self, transaction_id: str) -> Optional[FeeTransaction]:
        return self._transactions.get(transaction_id)

    def transactions(
        self, state: Optional[TransactionState] = None,
    ) -> List[FeeTransaction]:
        """Return transactions in creation order, optionally filtered by state."""
        if state is None:
            return list(self._transactions.values())
        return [t for t in self._transactions.values() if t.state == state]

    def _refund(
        self,
        record: FeeTransaction,
        reason: str,
        now: Optional[datetime],
    ) -> FeeTransaction:
        if now is None:
            now = datetime.now(timezone.utc)
        record.transition_to(TransactionState.REFUNDED)
        record.refunded_utc = now
        record.reason = reason
        record.commissions = mark_refunded(record.commissions)
        return record

    def _get(self, transaction_id: str) -> FeeTransaction:
        record = self._transactions.get(transaction_id)
        if record is None:
            raise ValueError(f"Transaction not found: {transaction_id}")
        return record
