"""Policy resolver — loads, validates, and serves the fee policy.

The fee policy is the static rule table the engines run against: fee
structures keyed by user tier, plus tier-gated commission rules. It is
loaded once, validated, and injected into engines. Nothing reads it
from a module-level global.

Usage:
    resolver = PolicyResolver.from_config_dir(Path("config"))
    engine = FeeCalculationEngine.from_resolver(resolver)
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

from marketfee.errors import FeeConfigurationError
from marketfee.models.fees import (
    CalculationMethod,
    CommissionRule,
    CommissionType,
    FeeRule,
    FeeRuleSet,
    FeeType,
    PaymentMethod,
    PayoutFrequency,
    RecipientKind,
    RecipientTemplate,
    UserTier,
)


def _decimal(value: Any, where: str) -> Decimal:
    """Parse a config number. Strings are preferred to keep values exact."""
    if isinstance(value, bool):
        raise FeeConfigurationError(f"{where}: expected a number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise FeeConfigurationError(f"{where}: expected a number, got {value!r}")
    if not parsed.is_finite():
        raise FeeConfigurationError(f"{where}: expected a finite number, got {value!r}")
    return parsed


def _optional_decimal(value: Any, where: str) -> Optional[Decimal]:
    if value is None:
        return None
    return _decimal(value, where)


def _enum(enum_cls: Any, value: Any, where: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise FeeConfigurationError(
            f"{where}: unknown value {value!r} (expected one of: {valid})"
        )


def _tiers(values: Any, where: str) -> tuple[UserTier, ...]:
    if not isinstance(values, list) or not values:
        raise FeeConfigurationError(f"{where}: user_tiers must be a non-empty list")
    return tuple(_enum(UserTier, v, f"{where}.user_tiers") for v in values)


def validate_structures(structures: tuple[FeeRuleSet, ...]) -> None:
    """Reject rule tables where a tier is covered by more than one active structure.

    Raises:
        FeeConfigurationError: naming the tier and both structures.
    """
    owners: dict[UserTier, str] = {}
    for structure in structures:
        if not structure.is_active:
            continue
        for tier in structure.user_tiers:
            if tier in owners:
                raise FeeConfigurationError(
                    f"Tier '{tier.value}' is covered by more than one active "
                    f"fee structure: {owners[tier]}, {structure.structure_id}"
                )
            owners[tier] = structure.structure_id


class PolicyResolver:
    """Loads the fee policy and resolves it into typed, validated models."""

    POLICY_FILENAME = "fee_policy.json"

    def __init__(self, policy_data: dict[str, Any]) -> None:
        self._data = policy_data
        if "version" not in policy_data:
            raise FeeConfigurationError("Fee policy missing 'version' field")
        if "fee_structures" not in policy_data:
            raise FeeConfigurationError("Fee policy missing 'fee_structures' field")
        self._structures = tuple(
            self._parse_structure(i, s)
            for i, s in enumerate(policy_data["fee_structures"])
        )
        self._commission_rules = tuple(
            self._parse_commission_rule(i, c)
            for i, c in enumerate(policy_data.get("commission_rules", []))
        )
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load the fee policy from a config directory.

        Raises:
            FileNotFoundError: If fee_policy.json does not exist.
            FeeConfigurationError: If the policy is structurally invalid.
        """
        path = Path(config_dir) / cls.POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Fee policy not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(data)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return str(self._data["version"])

    def fee_structures(self) -> tuple[FeeRuleSet, ...]:
        """Return all configured fee structures, in declared order."""
        return self._structures

    def commission_rules(self) -> tuple[CommissionRule, ...]:
        """Return all configured commission rules, in declared order."""
        return self._commission_rules

    def supported_tiers(self) -> list[UserTier]:
        """Tiers covered by an active fee structure, in enum order."""
        covered = {
            tier
            for s in self._structures if s.is_active
            for tier in s.user_tiers
        }
        return [t for t in UserTier if t in covered]

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _parse_structure(self, index: int, data: dict[str, Any]) -> FeeRuleSet:
        where = f"fee_structures[{index}]"
        if not isinstance(data, dict):
            raise FeeConfigurationError(f"{where} must be an object")
        structure_id = data.get("structure_id")
        if not isinstance(structure_id, str) or not structure_id.strip():
            raise FeeConfigurationError(f"{where}: missing structure_id")
        rules = data.get("rules", [])
        if not isinstance(rules, list):
            raise FeeConfigurationError(f"{where}: rules must be a list")
        return FeeRuleSet(
            structure_id=structure_id,
            name=data.get("name", structure_id),
            user_tiers=_tiers(data.get("user_tiers"), where),
            rules=tuple(
                self._parse_rule(f"{where}.rules[{j}]", r)
                for j, r in enumerate(rules)
            ),
            is_active=bool(data.get("is_active", True)),
        )

    def _parse_rule(self, where: str, data: dict[str, Any]) -> FeeRule:
        if not isinstance(data, dict):
            raise FeeConfigurationError(f"{where} must be an object")
        if "rule_id" not in data:
            raise FeeConfigurationError(f"{where}: missing rule_id")
        rule = FeeRule(
            rule_id=data["rule_id"],
            fee_type=_enum(FeeType, data.get("fee_type"), f"{where}.fee_type"),
            calculation_method=_enum(
                CalculationMethod, data.get("calculation_method"),
                f"{where}.calculation_method",
            ),
            value=_decimal(data.get("value"), f"{where}.value"),
            min_amount=_optional_decimal(data.get("min_amount"), f"{where}.min_amount"),
            max_amount=_optional_decimal(data.get("max_amount"), f"{where}.max_amount"),
            is_active=bool(data.get("is_active", True)),
        )
        if rule.value < 0:
            raise FeeConfigurationError(f"{where}: value must be >= 0")
        if (
            rule.calculation_method == CalculationMethod.PERCENTAGE
            and rule.value > 100
        ):
            raise FeeConfigurationError(f"{where}: percentage value must be <= 100")
        for bound in (rule.min_amount, rule.max_amount):
            if bound is not None and bound < 0:
                raise FeeConfigurationError(f"{where}: clamp bounds must be >= 0")
        if (
            rule.min_amount is not None
            and rule.max_amount is not None
            and rule.min_amount > rule.max_amount
        ):
            raise FeeConfigurationError(f"{where}: min_amount exceeds max_amount")
        return rule

    def _parse_commission_rule(self, index: int, data: dict[str, Any]) -> CommissionRule:
        where = f"commission_rules[{index}]"
        if not isinstance(data, dict):
            raise FeeConfigurationError(f"{where} must be an object")
        if "rule_id" not in data:
            raise FeeConfigurationError(f"{where}: missing rule_id")
        recipient = data.get("recipient")
        if not isinstance(recipient, dict) or "recipient_id" not in recipient:
            raise FeeConfigurationError(f"{where}: recipient must name a recipient_id")

        rule = CommissionRule(
            rule_id=data["rule_id"],
            commission_type=_enum(
                CommissionType, data.get("commission_type"),
                f"{where}.commission_type",
            ),
            percentage=_decimal(data.get("percentage"), f"{where}.percentage"),
            user_tiers=_tiers(data.get("user_tiers"), where),
            recipient=RecipientTemplate(
                recipient_id=recipient["recipient_id"],
                name=recipient.get("name", recipient["recipient_id"]),
                kind=_enum(
                    RecipientKind, recipient.get("kind", "user"),
                    f"{where}.recipient.kind",
                ),
                payment_method=_enum(
                    PaymentMethod, recipient.get("payment_method", "bank_transfer"),
                    f"{where}.recipient.payment_method",
                ),
                frequency=_enum(
                    PayoutFrequency, recipient.get("frequency", "monthly"),
                    f"{where}.recipient.frequency",
                ),
                minimum_amount=_decimal(
                    recipient.get("minimum_amount", "0"),
                    f"{where}.recipient.minimum_amount",
                ),
            ),
            due_days=int(data.get("due_days", 30)),
            description=data.get("description", ""),
            is_active=bool(data.get("is_active", True)),
        )
        if not (Decimal("0") <= rule.percentage <= Decimal("100")):
            raise FeeConfigurationError(f"{where}: percentage must be in [0, 100]")
        if rule.due_days <= 0:
            raise FeeConfigurationError(f"{where}: due_days must be > 0")
        return rule

    def _validate(self) -> None:
        ids = [s.structure_id for s in self._structures]
        if len(ids) != len(set(ids)):
            raise FeeConfigurationError("Fee policy has duplicate structure_id values")
        for structure in self._structures:
            rule_ids = [r.rule_id for r in structure.rules]
            if len(rule_ids) != len(set(rule_ids)):
                raise FeeConfigurationError(
                    f"Fee structure '{structure.structure_id}' has duplicate rule_id values"
                )
        commission_ids = [c.rule_id for c in self._commission_rules]
        if len(commission_ids) != len(set(commission_ids)):
            raise FeeConfigurationError("Fee policy has duplicate commission rule_id values")
        validate_structures(self._structures)
