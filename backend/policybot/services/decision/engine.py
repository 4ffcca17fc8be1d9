"""
Deterministic Policy Decision Engine
Policy eligibility is decided here, NOT by the LLM.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List


class YesNoStatus(str, Enum):
    """Tri-state confirmation for yes/no facts (truck, racing car)."""
    CONFIRMED_YES = "confirmed_yes"
    CONFIRMED_NO = "confirmed_no"
    UNKNOWN = "unknown"


class AgeStatus(str, Enum):
    """Tri-state confirmation for the vehicle age bracket (old = over 10 years)."""
    CONFIRMED_OLD = "confirmed_old"
    CONFIRMED_NEW = "confirmed_new"
    UNKNOWN = "unknown"


class PolicyId(str, Enum):
    MBI = "MBI"
    CCI = "CCI"
    THIRD_PARTY = "3RDP"


POLICY_NAMES = {
    PolicyId.MBI: "Mechanical Breakdown Insurance",
    PolicyId.CCI: "Comprehensive Car Insurance",
    PolicyId.THIRD_PARTY: "Third Party Car Insurance",
}

# Display order for rendering
POLICY_ORDER = [PolicyId.MBI, PolicyId.CCI, PolicyId.THIRD_PARTY]

PolicySet = FrozenSet[PolicyId]


@dataclass(frozen=True)
class VehicleFacts:
    """Confirmed facts about the customer's vehicle."""
    truck: YesNoStatus = YesNoStatus.UNKNOWN
    racing: YesNoStatus = YesNoStatus.UNKNOWN
    age: AgeStatus = AgeStatus.UNKNOWN

    @classmethod
    def unknown(cls) -> "VehicleFacts":
        return cls()

    def to_dict(self) -> dict:
        return {
            "truck": self.truck.value,
            "racing": self.racing.value,
            "age": self.age.value,
        }


def decide_policies(facts: VehicleFacts) -> PolicySet:
    """
    Map vehicle facts to the eligible policies.

    Rules:
    - Trucks and racing cars only qualify for 3RDP, whatever their age
    - Other vehicles over 10 years old qualify for MBI and 3RDP
    - Other vehicles 10 years old or newer qualify for MBI and CCI
    - Anything else is undecided and yields an empty set
    """
    if facts.truck == YesNoStatus.CONFIRMED_YES or facts.racing == YesNoStatus.CONFIRMED_YES:
        return frozenset({PolicyId.THIRD_PARTY})

    if facts.truck == YesNoStatus.CONFIRMED_NO and facts.racing == YesNoStatus.CONFIRMED_NO:
        if facts.age == AgeStatus.CONFIRMED_OLD:
            return frozenset({PolicyId.MBI, PolicyId.THIRD_PARTY})
        if facts.age == AgeStatus.CONFIRMED_NEW:
            return frozenset({PolicyId.MBI, PolicyId.CCI})

    return frozenset()


def ordered_policies(policies: PolicySet) -> List[PolicyId]:
    """Policies in stable display order."""
    return [p for p in POLICY_ORDER if p in policies]


def parse_policy_codes(codes: List[str]) -> PolicySet:
    """Convert oracle-supplied policy codes, dropping anything unrecognised."""
    valid = {p.value: p for p in PolicyId}
    return frozenset(valid[c.strip().upper()] for c in codes if c and c.strip().upper() in valid)
