"""Commission distribution — filters, totals, and payout planning.

Commissions owed to the same recipient are batched. A batch is only
paid once it reaches the recipient's minimum payout amount; smaller
batches stay pending until a later payout run, pooling commissions
from further transactions, tops them up.

All functions are pure. Commission status changes return new values.
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import Iterable, Optional

from marketfee.models.fees import CalculatedCommission, CommissionType, FeeStatus
from marketfee.models.transactions import PayoutBatch


def filter_commissions(
    commissions: Iterable[CalculatedCommission],
    commission_type: Optional[CommissionType] = None,
    status: Optional[FeeStatus] = None,
) -> list[CalculatedCommission]:
    """Return commissions matching a type and/or status (None matches all)."""
    return [
        c for c in commissions
        if (commission_type is None or c.commission_type == commission_type)
        and (status is None or c.status == status)
    ]


def total_amount(commissions: Iterable[CalculatedCommission]) -> Decimal:
    return sum((c.amount for c in commissions), Decimal("0"))


def plan_payouts(commissions: Iterable[CalculatedCommission]) -> list[PayoutBatch]:
    """Group pending commissions by recipient into payout batches.

    Batches are returned in first-seen recipient order. Non-pending
    commissions are ignored.
    """
    grouped: dict[str, list[CalculatedCommission]] = {}
    for commission in commissions:
        if commission.status != FeeStatus.PENDING:
            continue
        grouped.setdefault(commission.recipient.recipient_id, []).append(commission)

    batches = []
    for members in grouped.values():
        recipient = members[0].recipient
        total = total_amount(members)
        # The same calculation applied twice repeats its commission ids
        details: dict[str, Decimal] = {}
        for c in members:
            details[c.commission_id] = details.get(c.commission_id, Decimal("0")) + c.amount
        batches.append(PayoutBatch(
            recipient=recipient,
            commission_ids=tuple(dict.fromkeys(c.commission_id for c in members)),
            total=total,
            payable=total >= recipient.minimum_amount,
            details=details,
        ))
    return batches


def mark_distributed(
    commissions: Iterable[CalculatedCommission],
    commission_ids: Iterable[str],
) -> tuple[CalculatedCommission, ...]:
    """Return commissions with the named pending ones marked applied."""
    selected = set(commission_ids)
    return tuple(
        dataclasses.replace(c, status=FeeStatus.APPLIED)
        if c.commission_id in selected and c.status == FeeStatus.PENDING
        else c
        for c in commissions
    )


def mark_refunded(
    commissions: Iterable[CalculatedCommission],
) -> tuple[CalculatedCommission, ...]:
    """Return commissions with every non-refunded one marked refunded."""
    return tuple(
        dataclasses.replace(c, status=FeeStatus.REFUNDED)
        if c.status != FeeStatus.REFUNDED
        else c
        for c in commissions
    )
