"""Tests for the policy resolver — proves it loads and validates the fee policy."""

import copy
import json
import pytest
from decimal import Decimal
from pathlib import Path

from marketfee.errors import FeeConfigurationError
from marketfee.models.fees import (
    CalculationMethod,
    CommissionType,
    FeeType,
    PaymentMethod,
    PayoutFrequency,
    UserTier,
)
from marketfee.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def policy() -> dict:
    with (CONFIG_DIR / "fee_policy.json").open("r", encoding="utf-8") as f:
        return json.load(f)


def _second_structure(tiers: list, structure_id: str = "extra") -> dict:
    return {
        "structure_id": structure_id,
        "name": "Extra Fees",
        "user_tiers": tiers,
        "rules": [{
            "rule_id": f"{structure_id}_fee",
            "fee_type": "service_fee",
            "calculation_method": "fixed",
            "value": "1.50",
        }],
    }


class TestShippedPolicy:
    def test_version(self, resolver: PolicyResolver) -> None:
        assert resolver.version == "1.0"

    def test_basic_structure(self, resolver: PolicyResolver) -> None:
        structures = resolver.fee_structures()
        assert len(structures) == 1
        basic = structures[0]
        assert basic.structure_id == "basic_structure"
        assert basic.name == "Basic Fees"
        assert basic.user_tiers == (UserTier.BASIC,)
        assert basic.is_active is True

    def test_basic_rule(self, resolver: PolicyResolver) -> None:
        rule = resolver.fee_structures()[0].rules[0]
        assert rule.fee_type == FeeType.PLATFORM_FEE
        assert rule.calculation_method == CalculationMethod.PERCENTAGE
        assert rule.value == Decimal("5.0")
        assert rule.min_amount is None
        assert rule.max_amount is None

    def test_referral_commission(self, resolver: PolicyResolver) -> None:
        rules = resolver.commission_rules()
        assert len(rules) == 1
        rule = rules[0]
        assert rule.commission_type == CommissionType.REFERRAL
        assert rule.percentage == Decimal("2")
        assert rule.due_days == 30
        assert rule.applies_to(UserTier.BASIC)
        assert not rule.applies_to(UserTier.PREMIUM)

    def test_referral_recipient(self, resolver: PolicyResolver) -> None:
        recipient = resolver.commission_rules()[0].recipient
        assert recipient.recipient_id == "platform"
        assert recipient.payment_method == PaymentMethod.BANK_TRANSFER
        assert recipient.frequency == PayoutFrequency.MONTHLY
        assert recipient.minimum_amount == Decimal("50")

    def test_supported_tiers(self, resolver: PolicyResolver) -> None:
        assert resolver.supported_tiers() == [UserTier.BASIC]

    def test_missing_config_dir(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            PolicyResolver.from_config_dir(tmp_path)


class TestStructureValidation:
    def test_missing_version(self, policy: dict) -> None:
        del policy["version"]
        with pytest.raises(FeeConfigurationError, match="version"):
            PolicyResolver(policy)

    def test_missing_structures(self, policy: dict) -> None:
        del policy["fee_structures"]
        with pytest.raises(FeeConfigurationError, match="fee_structures"):
            PolicyResolver(policy)

    def test_commission_rules_optional(self, policy: dict) -> None:
        del policy["commission_rules"]
        assert PolicyResolver(policy).commission_rules() == ()

    def test_unknown_tier(self, policy: dict) -> None:
        policy["fee_structures"][0]["user_tiers"] = ["gold"]
        with pytest.raises(FeeConfigurationError, match="unknown value 'gold'"):
            PolicyResolver(policy)

    def test_empty_tiers(self, policy: dict) -> None:
        policy["fee_structures"][0]["user_tiers"] = []
        with pytest.raises(FeeConfigurationError, match="non-empty"):
            PolicyResolver(policy)

    def test_duplicate_structure_id(self, policy: dict) -> None:
        policy["fee_structures"].append(
            _second_structure(["premium"], structure_id="basic_structure"),
        )
        with pytest.raises(FeeConfigurationError, match="duplicate structure_id"):
            PolicyResolver(policy)

    def test_tier_covered_twice(self, policy: dict) -> None:
        policy["fee_structures"].append(_second_structure(["basic", "vip"]))
        with pytest.raises(FeeConfigurationError, match="more than one active"):
            PolicyResolver(policy)

    def test_inactive_overlap_allowed(self, policy: dict) -> None:
        extra = _second_structure(["basic"])
        extra["is_active"] = False
        policy["fee_structures"].append(extra)
        resolver = PolicyResolver(policy)
        assert resolver.supported_tiers() == [UserTier.BASIC]

    def test_additional_tier_supported(self, policy: dict) -> None:
        policy["fee_structures"].append(_second_structure(["vip", "premium"]))
        resolver = PolicyResolver(policy)
        assert resolver.supported_tiers() == [UserTier.BASIC, UserTier.PREMIUM, UserTier.VIP]


class TestRuleValidation:
    def _rule(self, policy: dict) -> dict:
        return policy["fee_structures"][0]["rules"][0]

    def test_unknown_fee_type(self, policy: dict) -> None:
        self._rule(policy)["fee_type"] = "hidden_fee"
        with pytest.raises(FeeConfigurationError, match="fee_type"):
            PolicyResolver(policy)

    def test_negative_value(self, policy: dict) -> None:
        self._rule(policy)["value"] = "-1"
        with pytest.raises(FeeConfigurationError, match="value must be >= 0"):
            PolicyResolver(policy)

    def test_percentage_over_hundred(self, policy: dict) -> None:
        self._rule(policy)["value"] = "101"
        with pytest.raises(FeeConfigurationError, match="<= 100"):
            PolicyResolver(policy)

    def test_fixed_over_hundred_allowed(self, policy: dict) -> None:
        rule = self._rule(policy)
        rule["calculation_method"] = "fixed"
        rule["value"] = "250"
        resolver = PolicyResolver(policy)
        assert resolver.fee_structures()[0].rules[0].value == Decimal("250")

    def test_non_numeric_value(self, policy: dict) -> None:
        self._rule(policy)["value"] = "five"
        with pytest.raises(FeeConfigurationError, match="expected a number"):
            PolicyResolver(policy)

    def test_boolean_value_rejected(self, policy: dict) -> None:
        self._rule(policy)["value"] = True
        with pytest.raises(FeeConfigurationError, match="expected a number"):
            PolicyResolver(policy)

    @pytest.mark.parametrize("value", ["NaN", "sNaN", "Infinity", "-Infinity"])
    def test_non_finite_value_rejected(self, policy: dict, value: str) -> None:
        self._rule(policy)["value"] = value
        with pytest.raises(FeeConfigurationError, match="finite number"):
            PolicyResolver(policy)

    def test_infinite_fixed_fee_rejected(self, policy: dict) -> None:
        rule = self._rule(policy)
        rule["calculation_method"] = "fixed"
        rule["value"] = "Infinity"
        with pytest.raises(FeeConfigurationError, match="finite number"):
            PolicyResolver(policy)

    def test_non_finite_bound_rejected(self, policy: dict) -> None:
        self._rule(policy)["max_amount"] = "NaN"
        with pytest.raises(FeeConfigurationError, match="max_amount"):
            PolicyResolver(policy)

    def test_rule_must_be_object(self, policy: dict) -> None:
        policy["fee_structures"][0]["rules"] = ["basic_platform_fee"]
        with pytest.raises(FeeConfigurationError, match=r"rules\[0\] must be an object"):
            PolicyResolver(policy)

    def test_duplicate_rule_id_in_structure(self, policy: dict) -> None:
        rules = policy["fee_structures"][0]["rules"]
        rules.append(copy.deepcopy(rules[0]))
        with pytest.raises(FeeConfigurationError, match="duplicate rule_id"):
            PolicyResolver(policy)

    def test_same_rule_id_in_other_structure_allowed(self, policy: dict) -> None:
        extra = _second_structure(["premium"])
        extra["rules"][0]["rule_id"] = "basic_platform_fee"
        policy["fee_structures"].append(extra)
        assert len(PolicyResolver(policy).fee_structures()) == 2

    def test_min_exceeds_max(self, policy: dict) -> None:
        rule = self._rule(policy)
        rule["min_amount"] = "100"
        rule["max_amount"] = "10"
        with pytest.raises(FeeConfigurationError, match="min_amount exceeds max_amount"):
            PolicyResolver(policy)

    def test_negative_bound(self, policy: dict) -> None:
        self._rule(policy)["min_amount"] = "-5"
        with pytest.raises(FeeConfigurationError, match="clamp bounds"):
            PolicyResolver(policy)

    def test_bounds_parsed(self, policy: dict) -> None:
        rule = self._rule(policy)
        rule["min_amount"] = "1"
        rule["max_amount"] = 500
        parsed = PolicyResolver(policy).fee_structures()[0].rules[0]
        assert parsed.min_amount == Decimal("1")
        assert parsed.max_amount == Decimal("500")

    def test_missing_rule_id(self, policy: dict) -> None:
        del self._rule(policy)["rule_id"]
        with pytest.raises(FeeConfigurationError, match="rule_id"):
            PolicyResolver(policy)


class TestCommissionValidation:
    def _commission(self, policy: dict) -> dict:
        return policy["commission_rules"][0]

    def test_percentage_out_of_range(self, policy: dict) -> None:
        self._commission(policy)["percentage"] = "150"
        with pytest.raises(FeeConfigurationError, match=r"\[0, 100\]"):
            PolicyResolver(policy)

    def test_non_finite_percentage(self, policy: dict) -> None:
        self._commission(policy)["percentage"] = "NaN"
        with pytest.raises(FeeConfigurationError, match="finite number"):
            PolicyResolver(policy)

    def test_commission_rule_must_be_object(self, policy: dict) -> None:
        policy["commission_rules"] = [42]
        with pytest.raises(FeeConfigurationError, match=r"commission_rules\[0\] must be an object"):
            PolicyResolver(policy)

    def test_duplicate_commission_rule_id(self, policy: dict) -> None:
        rules = policy["commission_rules"]
        second = copy.deepcopy(rules[0])
        second["commission_type"] = "partner"
        rules.append(second)
        with pytest.raises(FeeConfigurationError, match="duplicate commission rule_id"):
            PolicyResolver(policy)

    def test_non_positive_due_days(self, policy: dict) -> None:
        self._commission(policy)["due_days"] = 0
        with pytest.raises(FeeConfigurationError, match="due_days"):
            PolicyResolver(policy)

    def test_missing_recipient(self, policy: dict) -> None:
        del self._commission(policy)["recipient"]
        with pytest.raises(FeeConfigurationError, match="recipient"):
            PolicyResolver(policy)

    def test_unknown_payment_method(self, policy: dict) -> None:
        self._commission(policy)["recipient"]["payment_method"] = "cheque"
        with pytest.raises(FeeConfigurationError, match="payment_method"):
            PolicyResolver(policy)

    def test_recipient_defaults(self, policy: dict) -> None:
        self._commission(policy)["recipient"] = {"recipient_id": "partner_1"}
        recipient = PolicyResolver(policy).commission_rules()[0].recipient
        assert recipient.name == "partner_1"
        assert recipient.payment_method == PaymentMethod.BANK_TRANSFER
        assert recipient.minimum_amount == Decimal("0")

    def test_policy_not_mutated(self, policy: dict) -> None:
        original = copy.deepcopy(policy)
        PolicyResolver(policy)
        assert policy == original
