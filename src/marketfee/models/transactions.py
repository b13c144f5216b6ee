"""Transaction models — applied fee calculations and commission payouts.

A calculation becomes a transaction once its fees are applied to a
project. The transaction lifecycle is a strict state machine:

    APPLIED → REFUNDED
    APPLIED → DISPUTED → APPLIED    (dispute rejected)
    APPLIED → DISPUTED → REFUNDED   (dispute upheld)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from marketfee.models.fees import (
    CalculatedCommission,
    CommissionRecipient,
    FeeCalculationResult,
)


class TransactionState(str, enum.Enum):
    APPLIED = "applied"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


# Valid transaction state transitions
TRANSACTION_TRANSITIONS: Dict[TransactionState, frozenset] = {
    TransactionState.APPLIED: frozenset({
        TransactionState.DISPUTED,
        TransactionState.REFUNDED,
    }),
    TransactionState.DISPUTED: frozenset({
        TransactionState.APPLIED,
        TransactionState.REFUNDED,
    }),
    TransactionState.REFUNDED: frozenset(),
}


@dataclass
class FeeTransaction:
    """A fee calculation applied to a project.

    Mutable — state transitions happen after the fees are applied.
    All transitions are validated against TRANSACTION_TRANSITIONS.
    Commission values are replaced (never mutated) as their status moves.
    """
    transaction_id: str
    project_id: str
    user_id: str
    calculation: FeeCalculationResult
    commissions: Tuple[CalculatedCommission, ...] = ()
    state: TransactionState = TransactionState.APPLIED
    processed_utc: Optional[datetime] = None
    disputed_utc: Optional[datetime] = None
    refunded_utc: Optional[datetime] = None
    reason: Optional[str] = None

    def transition_to(self, new_state: TransactionState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = TRANSACTION_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            allowed_desc = ", ".join(s.value for s in allowed) or "none"
            raise ValueError(
                f"Invalid transaction transition: {self.state.value} → {new_state.value}. "
                f"Allowed: {allowed_desc}"
            )
        self.state = new_state

    @property
    def total_fees(self) -> Decimal:
        return self.calculation.total_fees


@dataclass(frozen=True)
class PayoutBatch:
    """Pending commissions owed to one recipient.

    A batch is payable once its total reaches the recipient's minimum
    payout amount; otherwise it is carried to the next payout run.
    """
    recipient: CommissionRecipient
    commission_ids: Tuple[str, ...]
    total: Decimal
    payable: bool
    details: Dict[str, Decimal] = field(default_factory=dict)
