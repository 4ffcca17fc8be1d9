"""
Policy decision package
"""
from policybot.services.decision.engine import (
    YesNoStatus,
    AgeStatus,
    PolicyId,
    PolicySet,
    VehicleFacts,
    POLICY_NAMES,
    decide_policies,
    ordered_policies,
    parse_policy_codes,
)

__all__ = [
    "YesNoStatus",
    "AgeStatus",
    "PolicyId",
    "PolicySet",
    "VehicleFacts",
    "POLICY_NAMES",
    "decide_policies",
    "ordered_policies",
    "parse_policy_codes",
]
