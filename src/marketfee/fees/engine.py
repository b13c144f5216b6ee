"""Fee calculation engine — maps a calculation request to a fee breakdown.

The computation is fully deterministic given the request, the rule
table, and the calculation time:

    structure = the single active fee structure covering request.user_tier
    for each active rule, in order:
        raw = project_value × value / 100      (percentage)
        raw = value                            (fixed)
        amount = round_half_up(clamp(raw, min_amount, max_amount), 0.01)
    net_amount = project_value − Σ amount
    fee_percentage = Σ amount / project_value × 100

Commissions are derived from tier-gated commission rules:

    commission = round_half_up(project_value × percentage / 100, 0.01)

They are informational: they never reduce net_amount.

Invariants:
- net_amount + Σ fee amounts == gross_amount
- breakdown named fields sum every fee of their type
- identical request + identical `now` → identical result
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from marketfee.errors import InvalidValueError, NoMatchingStructureError
from marketfee.models.fees import (
    CalculatedCommission,
    CalculatedFee,
    CalculationMethod,
    CalculationRequest,
    CommissionRecipient,
    CommissionRule,
    FeeBreakdown,
    FeeCalculationResult,
    FeeRule,
    FeeRuleSet,
    FeeStatus,
    FeeType,
    UserTier,
)
from marketfee.policy.resolver import PolicyResolver, validate_structures


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_amount(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def fee_display_name(fee_type: FeeType) -> str:
    """platform_fee → PLATFORM FEE"""
    return fee_type.value.replace("_", " ").upper()


class FeeCalculationEngine:
    """Computes fees and commissions for a single calculation request.

    The engine holds only an immutable rule table and is safe to share
    between threads. It has no side effects.

    Usage:
        engine = FeeCalculationEngine.from_resolver(resolver)
        result = engine.calculate(CalculationRequest(
            project_value=Decimal("1000"),
            project_type=ProjectType.FIXED,
            user_tier=UserTier.BASIC,
            currency="USD",
        ))
    """

    def __init__(
        self,
        structures: Iterable[FeeRuleSet],
        commission_rules: Iterable[CommissionRule] = (),
    ) -> None:
        self._structures = tuple(structures)
        self._commission_rules = tuple(commission_rules)
        validate_structures(self._structures)

    @classmethod
    def from_resolver(cls, resolver: PolicyResolver) -> FeeCalculationEngine:
        return cls(resolver.fee_structures(), resolver.commission_rules())

    @property
    def structures(self) -> tuple[FeeRuleSet, ...]:
        return self._structures

    @property
    def commission_rules(self) -> tuple[CommissionRule, ...]:
        return self._commission_rules

    def structure_for_tier(self, tier: UserTier) -> Optional[FeeRuleSet]:
        """Return the active fee structure covering a tier, if any."""
        for structure in self._structures:
            if structure.applies_to(tier):
                return structure
        return None

    def calculate(
        self,
        request: CalculationRequest,
        now: Optional[datetime] = None,
    ) -> FeeCalculationResult:
        """Compute the full fee and commission breakdown for a request.

        Args:
            request: The calculation request.
            now: Calculation time (defaults to UTC now). Commission due
                dates are measured from it.

        Returns:
            A frozen FeeCalculationResult.

        Raises:
            InvalidValueError: project_value is not strictly positive.
            NoMatchingStructureError: no active structure covers the tier.
        """
        if request.project_value <= Decimal("0"):
            raise InvalidValueError("Project value must be positive")

        structure = self.structure_for_tier(request.user_tier)
        if structure is None:
            raise NoMatchingStructureError(
                f"No fee structure found for tier '{request.user_tier.value}'"
            )
        if now is None:
            now = datetime.now(timezone.utc)

        fees = tuple(
            self._evaluate_rule(rule, request)
            for rule in structure.rules
            if rule.is_active
        )
        total_fees = sum((f.amount for f in fees), Decimal("0"))
        net_amount = request.project_value - total_fees

        commissions = tuple(
            self._derive_commission(rule, request, now)
            for rule in self._commission_rules
            if rule.applies_to(request.user_tier)
        )

        breakdown = FeeBreakdown(
            gross_amount=request.project_value,
            platform_fees=self._sum_type(fees, FeeType.PLATFORM_FEE),
            service_fees=self._sum_type(fees, FeeType.SERVICE_FEE),
            processing_fees=self._sum_type(fees, FeeType.PROCESSING_FEE),
            net_amount=net_amount,
            fee_percentage=total_fees / request.project_value * HUNDRED,
        )

        return FeeCalculationResult(
            request=request,
            total_amount=request.project_value,
            net_amount=net_amount,
            fees=fees,
            commissions=commissions,
            breakdown=breakdown,
            calculated_utc=now,
        )

    def _evaluate_rule(
        self, rule: FeeRule, request: CalculationRequest,
    ) -> CalculatedFee:
        if rule.calculation_method == CalculationMethod.PERCENTAGE:
            amount = request.project_value * rule.value / HUNDRED
        else:
            amount = rule.value

        # Bounds clamp independently; min first, then max
        if rule.min_amount is not None and amount < rule.min_amount:
            amount = rule.min_amount
        if rule.max_amount is not None and amount > rule.max_amount:
            amount = rule.max_amount

        is_percentage = rule.calculation_method == CalculationMethod.PERCENTAGE
        return CalculatedFee(
            fee_id=f"fee_{request.project_id}_{rule.rule_id}",
            fee_type=rule.fee_type,
            name=fee_display_name(rule.fee_type),
            description=f"{rule.calculation_method.value} fee",
            amount=round_amount(amount),
            percentage=rule.value if is_percentage else None,
            rule=rule,
        )

    def _derive_commission(
        self,
        rule: CommissionRule,
        request: CalculationRequest,
        now: datetime,
    ) -> CalculatedCommission:
        template = rule.recipient
        return CalculatedCommission(
            commission_id=f"comm_{request.project_id}_{rule.rule_id}",
            commission_type=rule.commission_type,
            recipient=CommissionRecipient(
                recipient_id=template.recipient_id,
                name=template.name,
                kind=template.kind,
                payment_method=template.payment_method,
                currency=request.currency,
                frequency=template.frequency,
                minimum_amount=template.minimum_amount,
            ),
            amount=round_amount(request.project_value * rule.percentage / HUNDRED),
            percentage=rule.percentage,
            description=rule.description or f"{rule.commission_type.value} commission",
            status=FeeStatus.PENDING,
            due_utc=now + timedelta(days=rule.due_days),
        )

    @staticmethod
    def _sum_type(fees: tuple[CalculatedFee, ...], fee_type: FeeType) -> Decimal:
        return sum(
            (f.amount for f in fees if f.fee_type == fee_type), Decimal("0"),
        )
