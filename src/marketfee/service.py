"""Fee service — unified facade for fee calculation and fee transactions.

This is the primary interface for programmatic access. It orchestrates:
- Fee calculation (rule table from the policy resolver)
- Transaction lifecycle (apply, dispute, resolve, refund)
- Commission payouts (per transaction, or a payout run pooled per
  recipient across transactions; minimum payout enforced)
- Analytics (period summaries over transactions)
- Audit trail (append-only event log)

All operations return a ServiceResult; engine errors never escape the
facade. Every state change is recorded in the event log. If the audit
append fails, the operation fails closed and in-memory state is rolled
back, so there is never a state change without an audit record.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from marketfee.analytics.report import build_fee_analytics, trend_records
from marketfee.errors import FeeCalculationError
from marketfee.fees.engine import FeeCalculationEngine
from marketfee.fees.transactions import FeeTransactionManager
from marketfee.models.fees import (
    CalculationRequest,
    FeeCalculationResult,
    ProjectType,
    UserTier,
)
from marketfee.models.transactions import FeeTransaction, PayoutBatch, TransactionState
from marketfee.persistence.event_log import EventKind, EventLog, EventRecord
from marketfee.policy.resolver import PolicyResolver


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def calculation_summary(result: FeeCalculationResult) -> dict[str, Any]:
    """JSON-ready view of a calculation. Money is rendered as strings."""
    request = result.request
    breakdown = result.breakdown
    return {
        "project_id": request.project_id,
        "user_id": request.user_id,
        "user_tier": request.user_tier.value,
        "project_type": request.project_type.value,
        "currency": request.currency,
        "total_amount": str(result.total_amount),
        "net_amount": str(result.net_amount),
        "fees": [
            {
                "fee_id": f.fee_id,
                "type": f.fee_type.value,
                "name": f.name,
                "description": f.description,
                "amount": str(f.amount),
                "percentage": None if f.percentage is None else str(f.percentage),
            }
            for f in result.fees
        ],
        "commissions": [
            {
                "commission_id": c.commission_id,
                "type": c.commission_type.value,
                "recipient_id": c.recipient.recipient_id,
                "amount": str(c.amount),
                "percentage": str(c.percentage),
                "status": c.status.value,
                "due_utc": c.due_utc.isoformat(),
            }
            for c in result.commissions
        ],
        "breakdown": {
            "gross_amount": str(breakdown.gross_amount),
            "platform_fees": str(breakdown.platform_fees),
            "service_fees": str(breakdown.service_fees),
            "processing_fees": str(breakdown.processing_fees),
            "net_amount": str(breakdown.net_amount),
            "fee_percentage": str(breakdown.fee_percentage),
        },
        "calculated_utc": result.calculated_utc.isoformat(),
    }


class FeeService:
    """Fee management facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = FeeService(resolver, event_log=EventLog(path))

        result = service.calculate_fees(
            project_value=Decimal("1000"), user_tier=UserTier.BASIC,
            project_type=ProjectType.FIXED, currency="USD",
            user_id="u1", project_id="p1",
        )
        result = service.apply_fees("p1")
        result = service.process_commissions(result.data["transaction_id"])
        result = service.process_payouts()
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._engine = FeeCalculationEngine.from_resolver(resolver)
        self._transactions = FeeTransactionManager()
        self._event_log = event_log
        self._calculations: dict[str, FeeCalculationResult] = {}
        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = event_log.count if event_log is not None else 0

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_fees(
        self,
        project_value: Any,
        user_tier: UserTier,
        project_type: ProjectType,
        currency: str,
        user_id: str = "",
        project_id: str = "",
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Calculate fees and keep the result as the project's current quote."""
        try:
            value = Decimal(str(project_value))
            if not value.is_finite():
                raise ValueError(project_value)
        except (InvalidOperation, ValueError):
            return ServiceResult(
                success=False,
                errors=[f"Invalid project value: {project_value!r}"],
                data={"code": "INVALID_VALUE"},
            )

        request = CalculationRequest(
            project_value=value,
            project_type=project_type,
            user_tier=user_tier,
            currency=currency,
            user_id=user_id,
            project_id=project_id,
        )
        try:
            result = self._engine.calculate(request, now=now)
        except FeeCalculationError as e:
            return ServiceResult(success=False, errors=[str(e)], data={"code": e.code})

        err = self._record_event(
            EventKind.FEES_CALCULATED, user_id, project_id,
            {
                "total_amount": str(result.total_amount),
                "total_fees": str(result.total_fees),
                "net_amount": str(result.net_amount),
                "commissions": str(result.total_commissions),
            },
        )
        if err:
            return ServiceResult(success=False, errors=[err])

        self._calculations[project_id] = result
        return ServiceResult(success=True, data=calculation_summary(result))

    def get_calculation(self, project_id: str) -> Optional[FeeCalculationResult]:
        return self._calculations.get(project_id)

    def fee_structures(self) -> list[dict[str, Any]]:
        """Describe the configured fee structures."""
        return [
            {
                "structure_id": s.structure_id,
                "name": s.name,
                "is_active": s.is_active,
                "user_tiers": [t.value for t in s.user_tiers],
                "rules": [
                    {
                        "rule_id": r.rule_id,
                        "fee_type": r.fee_type.value,
                        "calculation_method": r.calculation_method.value,
                        "value": str(r.value),
                        "min_amount": None if r.min_amount is None else str(r.min_amount),
                        "max_amount": None if r.max_amount is None else str(r.max_amount),
                        "is_active": r.is_active,
                    }
                    for r in s.rules
                ],
            }
            for s in self._engine.structures
        ]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def apply_fees(
        self,
        project_id: str,
        transaction_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Apply the project's current calculation as a fee transaction."""
        calculation = self._calculations.get(project_id)
        if calculation is None:
            return ServiceResult(
                success=False,
                errors=[f"No calculation found for project: {project_id}"],
            )
        try:
            tx = self._transactions.apply_fees(
                calculation, transaction_id=transaction_id, now=now,
            )
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        err = self._record_event(
            EventKind.FEES_APPLIED, tx.user_id, tx.transaction_id,
            {"project_id": project_id, "total_fees": str(tx.total_fees)},
        )
        if err:
            self._transactions.discard(tx.transaction_id)
            return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data=self._transaction_data(tx))

    def process_commissions(self, transaction_id: str) -> ServiceResult:
        """Pay out payable commission batches for a transaction."""
        def _apply(tx: FeeTransaction) -> dict[str, Any]:
            batches = self._transactions.process_commissions(tx.transaction_id)
            return {
                "batches": [self._batch_data(b) for b in batches],
                "paid_commission_ids": [
                    cid for b in batches if b.payable for cid in b.commission_ids
                ],
            }

        return self._mutate(transaction_id, EventKind.COMMISSIONS_PROCESSED, _apply)

    def process_payouts(self) -> ServiceResult:
        """Run a payout across every applied transaction.

        Pending commissions to the same recipient are pooled, so several
        small commissions are paid once together they reach the
        recipient's minimum.
        """
        applied = self._transactions.transactions(TransactionState.APPLIED)
        snapshot = {t.transaction_id: t.commissions for t in applied}

        batches = self._transactions.process_payouts()
        paid_ids = [cid for b in batches if b.payable for cid in b.commission_ids]
        err = self._record_event(
            EventKind.PAYOUTS_PROCESSED, "system", "payout_run",
            {
                "paid_commission_ids": paid_ids,
                "paid_total": str(sum((b.total for b in batches if b.payable), Decimal("0"))),
                "transactions": sorted(snapshot),
            },
        )
        if err:
            for tx in applied:
                tx.commissions = snapshot[tx.transaction_id]
            return ServiceResult(success=False, errors=[err])

        return ServiceResult(success=True, data={
            "batches": [self._batch_data(b) for b in batches],
            "paid_commission_ids": paid_ids,
        })

    def dispute_fees(
        self,
        transaction_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def _apply(tx: FeeTransaction) -> dict[str, Any]:
            self._transactions.dispute_fees(tx.transaction_id, reason, now=now)
            return {"reason": reason}

        return self._mutate(transaction_id, EventKind.FEES_DISPUTED, _apply)

    def resolve_dispute(
        self,
        transaction_id: str,
        refund: bool,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Refund a disputed transaction, or reinstate it when refund is False."""
        def _apply(tx: FeeTransaction) -> dict[str, Any]:
            self._transactions.resolve_dispute(tx.transaction_id, refund, now=now)
            return {"refund": refund}

        return self._mutate(transaction_id, EventKind.DISPUTE_RESOLVED, _apply)

    def refund_fees(
        self,
        transaction_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def _apply(tx: FeeTransaction) -> dict[str, Any]:
            self._transactions.refund_fees(tx.transaction_id, reason, now=now)
            return {"reason": reason}

        return self._mutate(transaction_id, EventKind.FEES_REFUNDED, _apply)

    def get_transaction(self, transaction_id: str) -> Optional[FeeTransaction]:
        return self._transactions.get(transaction_id)

    # ------------------------------------------------------------------
    # Analytics and status
    # ------------------------------------------------------------------

    def get_analytics(self, start: date, end: date) -> ServiceResult:
        """Summarise transactions processed in [start, end]."""
        try:
            analytics = build_fee_analytics(self._transactions.transactions(), start, end)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data={
            "analytics": analytics,
            "trends": trend_records(analytics),
        })

    def status(self) -> dict[str, Any]:
        """Return a summary of service state."""
        return {
            "policy_version": self._resolver.version,
            "supported_tiers": [t.value for t in self._resolver.supported_tiers()],
            "calculations": len(self._calculations),
            "transactions": {
                state.value: len(self._transactions.transactions(state))
                for state in TransactionState
            },
            "audit_events": self._event_log.count if self._event_log is not None else 0,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _mutate(
        self,
        transaction_id: str,
        kind: EventKind,
        operation: Callable[[FeeTransaction], dict[str, Any]],
    ) -> ServiceResult:
        """Apply a transaction operation, audit it, roll back if auditing fails."""
        tx = self._transactions.get(transaction_id)
        if tx is None:
            return ServiceResult(
                success=False, errors=[f"Transaction not found: {transaction_id}"],
            )

        snapshot = dataclasses.replace(tx)
        try:
            extra = operation(tx)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        payload = {"state": tx.state.value}
        payload.update({k: v for k, v in extra.items() if k != "batches"})
        err = self._record_event(kind, tx.user_id, transaction_id, payload)
        if err:
            for f in dataclasses.fields(tx):
                setattr(tx, f.name, getattr(snapshot, f.name))
            return ServiceResult(success=False, errors=[err])

        data = self._transaction_data(tx)
        data.update(extra)
        return ServiceResult(success=True, data=data)

    def _transaction_data(self, tx: FeeTransaction) -> dict[str, Any]:
        return {
            "transaction_id": tx.transaction_id,
            "project_id": tx.project_id,
            "state": tx.state.value,
            "total_fees": str(tx.total_fees),
            "commissions": {c.commission_id: c.status.value for c in tx.commissions},
        }

    @staticmethod
    def _batch_data(batch: PayoutBatch) -> dict[str, Any]:
        return {
            "recipient_id": batch.recipient.recipient_id,
            "total": str(batch.total),
            "minimum_amount": str(batch.recipient.minimum_amount),
            "payable": batch.payable,
            "commission_ids": list(batch.commission_ids),
        }

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        subject_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns an error string or None."""
        if self._event_log is None:
            return None
        try:
            self._event_log.append(EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id or "system",
                subject_id=subject_id,
                payload=payload,
                timestamp_utc=datetime.now(timezone.utc),
            ))
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None
