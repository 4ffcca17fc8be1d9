"""
Fact Extraction Service

Classifies what the conversation has confirmed about the vehicle.
This is a bounded AI task - each fact is one of three fixed values, and
silence is always "unknown".

The oracle is also asked which policies apply, but that answer is only a
hint: eligibility comes from the decision engine.
"""
import threading
from dataclasses import dataclass, field
from typing import Optional

from policybot.core.logging import get_logger
from policybot.orchestration.state import Transcript, format_transcript
from policybot.services.decision import (
    AgeStatus,
    PolicySet,
    VehicleFacts,
    YesNoStatus,
    decide_policies,
    ordered_policies,
    parse_policy_codes,
)
from policybot.services.llm.oracle import FactAnalysis, InferenceOracle, OracleError

logger = get_logger(__name__)


FACT_PROMPT = """Analyze the conversation between a car insurance consultant and a customer.
Determine what the customer has EXPLICITLY confirmed or denied about their vehicle.

Facts:
- truck_status: is the vehicle a truck?
- racing_status: is the vehicle a racing car?
- age_status: is the vehicle more than 10 years old? (confirmed_old = over 10 years, confirmed_new = 10 years or newer)

Rules:
- Only use confirmed_* values when the customer explicitly said so. A model year
  or stated age counts as explicit for age_status.
- Never infer a fact from missing information; use "unknown" instead.
- Later statements override earlier ones.

Business rules for policy_recommendations:
- Truck or racing car: ["3RDP"]
- Neither, over 10 years old: ["MBI", "3RDP"]
- Neither, 10 years or newer: ["MBI", "CCI"]
- Not enough information: []

Conversation:
{conversation}
"""


@dataclass(frozen=True)
class FactReport:
    """Result of analyzing a transcript."""
    facts: VehicleFacts
    sufficient: bool
    policies: PolicySet = field(default_factory=frozenset)
    hinted_policies: PolicySet = field(default_factory=frozenset)


def is_sufficient(facts: VehicleFacts) -> bool:
    """
    Whether enough is confirmed to stop asking questions.

    Truck and racing status must both be known; age only matters when the
    vehicle is neither.
    """
    # A confirmed truck still needs the racing answer (and vice versa), so a
    # truck owner is asked about racing even though the policy set is fixed.
    if facts.truck == YesNoStatus.UNKNOWN or facts.racing == YesNoStatus.UNKNOWN:
        return False
    return (
        facts.truck == YesNoStatus.CONFIRMED_YES
        or facts.racing == YesNoStatus.CONFIRMED_YES
        or facts.age != AgeStatus.UNKNOWN
    )


class FactExtractor:
    """Re-derives vehicle facts from the whole transcript on every turn."""

    def __init__(self, oracle: InferenceOracle):
        self.oracle = oracle

    def analyze(
        self,
        transcript: Transcript,
        cancel_event: Optional[threading.Event] = None,
    ) -> FactReport:
        """
        Analyze the conversation so far.

        Oracle failure is not fatal: the report comes back all-unknown and
        the conversation keeps gathering.
        """
        try:
            analysis = self.oracle.classify(
                FACT_PROMPT.format(conversation=format_transcript(transcript)),
                FactAnalysis,
                cancel_event=cancel_event,
            )
        except OracleError as e:
            logger.warning(f"Fact analysis failed, continuing to gather: {e}")
            return FactReport(facts=VehicleFacts.unknown(), sufficient=False)

        facts = VehicleFacts(
            truck=YesNoStatus(analysis.truck_status),
            racing=YesNoStatus(analysis.racing_status),
            age=AgeStatus(analysis.age_status),
        )
        sufficient = is_sufficient(facts)
        policies = decide_policies(facts) if sufficient else frozenset()
        hinted = parse_policy_codes(analysis.policy_recommendations)

        if sufficient and hinted != policies:
            logger.warning(
                f"Oracle policy hint {[p.value for p in ordered_policies(hinted)]} disagrees with "
                f"decision engine {[p.value for p in ordered_policies(policies)]}; using decision engine"
            )

        logger.info(f"Analyzed facts: {facts.to_dict()} sufficient={sufficient}")

        return FactReport(
            facts=facts,
            sufficient=sufficient,
            policies=policies,
            hinted_policies=hinted,
        )
