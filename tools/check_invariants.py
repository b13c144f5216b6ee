#!/usr/bin/env python3
"""Fee policy invariant checks against the shipped config."""

import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional


ROOT = Path(__file__).resolve().parents[1]
POLICY_FILENAME = "fee_policy.json"

VALID_TIERS = {"basic", "premium", "enterprise", "vip"}
VALID_FEE_TYPES = {"platform_fee", "service_fee", "processing_fee"}
VALID_METHODS = {"percentage", "fixed"}
VALID_COMMISSION_TYPES = {"referral", "partner", "affiliate"}


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def as_decimal(value, label: str, errors: list[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{label} is not a number: {value!r}")
        return None
    if not parsed.is_finite():
        errors.append(f"{label} is not a finite number: {value!r}")
        return None
    return parsed


def check_rule(rule: dict, label: str, errors: list[str]) -> None:
    """Validate a single fee rule's type, method, value, and clamp bounds."""
    if rule.get("fee_type") not in VALID_FEE_TYPES:
        errors.append(f"{label} has unknown fee_type {rule.get('fee_type')!r}")
    method = rule.get("calculation_method")
    if method not in VALID_METHODS:
        errors.append(f"{label} has unknown calculation_method {method!r}")

    value = as_decimal(rule.get("value"), f"{label}.value", errors)
    low = as_decimal(rule.get("min_amount"), f"{label}.min_amount", errors)
    high = as_decimal(rule.get("max_amount"), f"{label}.max_amount", errors)
    if value is None:
        errors.append(f"{label} is missing value")
    elif value < 0:
        errors.append(f"{label}.value must be >= 0")
    elif method == "percentage" and value > 100:
        errors.append(f"{label}.value must be <= 100 for percentage rules")
    if low is not None and high is not None and low > high:
        errors.append(f"{label}.min_amount must not exceed max_amount")


def check(config_dir: Path = ROOT / "config") -> int:
    policy = load_json(Path(config_dir) / POLICY_FILENAME)
    errors: list[str] = []

    if "version" not in policy:
        errors.append("fee policy missing version")

    # --- Fee structure invariants ---
    covered: dict[str, str] = {}
    for structure in policy.get("fee_structures", []):
        sid = structure.get("structure_id", "<unnamed>")
        tiers = structure.get("user_tiers", [])
        if not tiers:
            errors.append(f"{sid} must apply to at least one tier")
        for tier in tiers:
            if tier not in VALID_TIERS:
                errors.append(f"{sid} names unknown tier {tier!r}")
            elif structure.get("is_active", True):
                if tier in covered:
                    errors.append(
                        f"tier {tier} covered by more than one active structure: "
                        f"{covered[tier]}, {sid}"
                    )
                covered[tier] = sid
        rule_ids = [r.get("rule_id") for r in structure.get("rules", []) if isinstance(r, dict)]
        if len(rule_ids) != len(set(rule_ids)):
            errors.append(f"{sid} has duplicate rule_id values")
        for index, rule in enumerate(structure.get("rules", [])):
            check_rule(rule, f"{sid}.rules[{index}]", errors)

    if "basic" not in covered:
        errors.append("basic tier must be covered by an active fee structure")

    # --- Commission invariants ---
    commission_ids = [r.get("rule_id") for r in policy.get("commission_rules", [])]
    if len(commission_ids) != len(set(commission_ids)):
        errors.append("commission rules have duplicate rule_id values")
    for rule in policy.get("commission_rules", []):
        rid = rule.get("rule_id", "<unnamed>")
        if rule.get("commission_type") not in VALID_COMMISSION_TYPES:
            errors.append(f"{rid} has unknown commission_type {rule.get('commission_type')!r}")
        pct = as_decimal(rule.get("percentage"), f"{rid}.percentage", errors)
        if pct is None or not (0 <= pct <= 100):
            errors.append(f"{rid}.percentage must be in [0, 100]")
        if int(rule.get("due_days", 30)) <= 0:
            errors.append(f"{rid}.due_days must be > 0")
        if not rule.get("recipient", {}).get("recipient_id"):
            errors.append(f"{rid} must name a recipient")
        # A commission on a tier with no fee structure could never be derived
        for tier in rule.get("user_tiers", []):
            if rule.get("is_active", True) and tier not in covered:
                errors.append(f"{rid} applies to tier {tier} which has no active fee structure")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    config_arg = Path(sys.argv[1]) if len(sys.argv) > 1 else ROOT / "config"
    raise SystemExit(check(config_arg))
