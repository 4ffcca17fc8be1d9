"""
Recommendation Renderer

Turns the decided policies into the final customer-facing message.
The template is authoritative; the optional LLM pass may only restyle it
and is discarded if it names a different set of policies.
"""
import re
import threading
from typing import Optional

from policybot.core.logging import get_logger
from policybot.services.decision import (
    AgeStatus,
    POLICY_NAMES,
    PolicyId,
    PolicySet,
    VehicleFacts,
    YesNoStatus,
    ordered_policies,
)
from policybot.services.llm.oracle import InferenceOracle

logger = get_logger(__name__)


NEED_MORE_INFO_MESSAGE = (
    "I need a little more information about your vehicle before I can recommend a policy."
)

STYLE_PROMPT = """Rewrite the following insurance recommendation so it sounds warm and natural.
Keep every policy name and code exactly as written, do not add or remove any policy,
and do not use Markdown. Reply with the rewritten message only.

Recommendation:
{recommendation}
"""


def describe_vehicle(facts: VehicleFacts) -> str:
    """Short qualifying clause built from the known facts."""
    if facts.truck == YesNoStatus.CONFIRMED_YES:
        return "since your vehicle is a truck"
    if facts.racing == YesNoStatus.CONFIRMED_YES:
        return "since your vehicle is a racing car"

    parts = []
    if facts.truck == YesNoStatus.CONFIRMED_NO and facts.racing == YesNoStatus.CONFIRMED_NO:
        parts.append("since your vehicle is neither a truck nor a racing car")
    if facts.age == AgeStatus.CONFIRMED_OLD:
        parts.append("it is more than 10 years old")
    elif facts.age == AgeStatus.CONFIRMED_NEW:
        parts.append("it is 10 years old or newer")
    return " and ".join(parts)


def format_policy(policy: PolicyId) -> str:
    return f"{POLICY_NAMES[policy]} ({policy.value})"


def render_template(facts: VehicleFacts, policies: PolicySet) -> str:
    """Deterministic recommendation text."""
    if not policies:
        return NEED_MORE_INFO_MESSAGE

    names = [format_policy(p) for p in ordered_policies(policies)]
    if len(names) == 1:
        listed = names[0]
        noun = "this policy"
    else:
        listed = ", ".join(names[:-1]) + " and " + names[-1]
        noun = "these policies"

    clause = describe_vehicle(facts)
    lead = f"Based on what you've told me, {clause}, " if clause else "Based on what you've told me, "
    return (
        f"{lead}I recommend {listed}. "
        f"Thank you for chatting with me, and please get in touch if you'd like to go ahead with {noun}."
    )


def names_same_policies(text: str, policies: PolicySet) -> bool:
    """True if ``text`` mentions every chosen policy code and no other."""
    for policy in PolicyId:
        mentioned = re.search(rf"\b{re.escape(policy.value)}\b", text, re.IGNORECASE) is not None
        if mentioned != (policy in policies):
            return False
    return True


class RecommendationRenderer:
    """Renders the final recommendation, optionally restyled by the oracle."""

    def __init__(self, oracle: Optional[InferenceOracle] = None, use_llm: bool = False):
        self.oracle = oracle
        self.use_llm = use_llm and oracle is not None

    def render(
        self,
        facts: VehicleFacts,
        policies: PolicySet,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        baseline = render_template(facts, policies)
        if not policies or not self.use_llm:
            return baseline

        styled = self.oracle.generate(
            STYLE_PROMPT.format(recommendation=baseline),
            cancel_event=cancel_event,
        )
        if not names_same_policies(styled, policies):
            logger.warning("Restyled recommendation changed the policy set; using template")
            return baseline
        return styled
