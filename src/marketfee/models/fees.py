"""Fee models — rule tables, calculation requests, and calculation results.

All monetary values use Decimal for exact arithmetic. No floats in finance.

Invariants enforced by these models:
- Rule tables are immutable once loaded (frozen dataclasses, tuple fields)
- Every calculation produces a full published breakdown
- net_amount == gross_amount - sum(fee.amount for fee in fees)
- Commissions are informational and never reduce net_amount
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple


class UserTier(str, enum.Enum):
    """Account tier that selects the applicable fee structure."""
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"
    VIP = "vip"


class ProjectType(str, enum.Enum):
    FIXED = "fixed"
    HOURLY = "hourly"
    MILESTONE = "milestone"
    SUBSCRIPTION = "subscription"


class FeeType(str, enum.Enum):
    """Classification of fees.

    Each type maps to a named field in the published FeeBreakdown.
    """
    PLATFORM_FEE = "platform_fee"
    SERVICE_FEE = "service_fee"
    PROCESSING_FEE = "processing_fee"


class CalculationMethod(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CommissionType(str, enum.Enum):
    REFERRAL = "referral"
    PARTNER = "partner"
    AFFILIATE = "affiliate"


class FeeStatus(str, enum.Enum):
    PENDING = "pending"
    APPLIED = "applied"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"


class PayoutFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecipientKind(str, enum.Enum):
    USER = "user"
    PARTNER = "partner"
    AFFILIATE = "affiliate"


# ----------------------------------------------------------------------
# Rule table
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class FeeRule:
    """A single fee rule inside a fee structure.

    `value` is in percentage points for the percentage method and in
    currency units for the fixed method. Clamp bounds are independent;
    a rule may set either, both, or neither.
    """
    rule_id: str
    fee_type: FeeType
    calculation_method: CalculationMethod
    value: Decimal
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    is_active: bool = True


@dataclass(frozen=True)
class FeeRuleSet:
    """A fee structure: the ordered rules applied to a set of user tiers.

    At most one active rule set may cover a given tier. The policy
    resolver and the engine both reject tables that break this.
    """
    structure_id: str
    name: str
    user_tiers: Tuple[UserTier, ...]
    rules: Tuple[FeeRule, ...]
    is_active: bool = True

    def applies_to(self, tier: UserTier) -> bool:
        return self.is_active and tier in self.user_tiers


@dataclass(frozen=True)
class RecipientTemplate:
    """Configured commission recipient, completed with a currency at calculation time."""
    recipient_id: str
    name: str
    kind: RecipientKind = RecipientKind.USER
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    frequency: PayoutFrequency = PayoutFrequency.MONTHLY
    minimum_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class CommissionRule:
    """A tier-gated commission derived from the gross project value."""
    rule_id: str
    commission_type: CommissionType
    percentage: Decimal
    user_tiers: Tuple[UserTier, ...]
    recipient: RecipientTemplate
    due_days: int = 30
    description: str = ""
    is_active: bool = True

    def applies_to(self, tier: UserTier) -> bool:
        return self.is_active and tier in self.user_tiers


# ----------------------------------------------------------------------
# Request and result
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class CalculationRequest:
    """Input to a fee calculation. user_id and project_id are echoed unchanged."""
    project_value: Decimal
    project_type: ProjectType
    user_tier: UserTier
    currency: str
    user_id: str = ""
    project_id: str = ""


@dataclass(frozen=True)
class CalculatedFee:
    """One fee rule's evaluated contribution."""
    fee_id: str
    fee_type: FeeType
    name: str
    description: str
    amount: Decimal
    percentage: Optional[Decimal]
    rule: FeeRule
    applied: bool = True


@dataclass(frozen=True)
class CommissionRecipient:
    recipient_id: str
    name: str
    kind: RecipientKind
    payment_method: PaymentMethod
    currency: str
    frequency: PayoutFrequency
    minimum_amount: Decimal


@dataclass(frozen=True)
class CalculatedCommission:
    """A derived payable to a third party.

    Commissions are informational on the calculation: they do not
    reduce the net amount. Status changes produce a new value.
    """
    commission_id: str
    commission_type: CommissionType
    recipient: CommissionRecipient
    amount: Decimal
    percentage: Decimal
    description: str
    status: FeeStatus
    due_utc: datetime


@dataclass(frozen=True)
class FeeBreakdown:
    """Published per-type breakdown of a calculation.

    Invariant: net_amount == gross_amount - total fees
    """
    gross_amount: Decimal
    platform_fees: Decimal
    service_fees: Decimal
    processing_fees: Decimal
    net_amount: Decimal
    fee_percentage: Decimal


@dataclass(frozen=True)
class FeeCalculationResult:
    """Full result of a fee calculation, owned by the caller."""
    request: CalculationRequest
    total_amount: Decimal
    net_amount: Decimal
    fees: Tuple[CalculatedFee, ...]
    commissions: Tuple[CalculatedCommission, ...]
    breakdown: FeeBreakdown
    calculated_utc: datetime

    @property
    def total_fees(self) -> Decimal:
        return sum((f.amount for f in self.fees), Decimal("0"))

    @property
    def total_commissions(self) -> Decimal:
        return sum((c.amount for c in self.commissions), Decimal("0"))
