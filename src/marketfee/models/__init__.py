"""Data models for fee calculation and fee transactions."""

from marketfee.models.fees import (
    CalculatedCommission,
    CalculatedFee,
    CalculationMethod,
    CalculationRequest,
    CommissionRecipient,
    CommissionRule,
    CommissionType,
    FeeBreakdown,
    FeeCalculationResult,
    FeeRule,
    FeeRuleSet,
    FeeStatus,
    FeeType,
    ProjectType,
    UserTier,
)
from marketfee.models.transactions import FeeTransaction, PayoutBatch, TransactionState

__all__ = [
    "CalculatedCommission",
    "CalculatedFee",
    "CalculationMethod",
    "CalculationRequest",
    "CommissionRecipient",
    "CommissionRule",
    "CommissionType",
    "FeeBreakdown",
    "FeeCalculationResult",
    "FeeRule",
    "FeeRuleSet",
    "FeeStatus",
    "FeeType",
    "ProjectType",
    "UserTier",
    "FeeTransaction",
    "PayoutBatch",
    "TransactionState",
]
