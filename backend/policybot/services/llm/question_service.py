"""
Clarifying question generation.
"""
import threading
from typing import List, Optional

from policybot.orchestration.state import Transcript, format_transcript
from policybot.services.decision import AgeStatus, VehicleFacts, YesNoStatus
from policybot.services.llm.oracle import InferenceOracle


QUESTION_PROMPT = """You are collecting information to recommend a car insurance policy.
Still unknown: {missing}

Ask the customer exactly ONE short, friendly question about the first unknown item.
If the customer's last message was unclear, politely ask them to clarify it.
Do not recommend any policy yet. Reply with the question only.

Conversation so far:
{conversation}
"""


def missing_facts(facts: VehicleFacts) -> List[str]:
    """Human-readable list of facts still needed, in asking order."""
    missing = []
    if facts.truck == YesNoStatus.UNKNOWN:
        missing.append("whether the vehicle is a truck")
    if facts.racing == YesNoStatus.UNKNOWN:
        missing.append("whether the vehicle is a racing car")
    needs_age = (
        facts.truck != YesNoStatus.CONFIRMED_YES
        and facts.racing != YesNoStatus.CONFIRMED_YES
    )
    if needs_age and facts.age == AgeStatus.UNKNOWN:
        missing.append("whether the vehicle is more than 10 years old")
    return missing


class QuestionPlanner:
    """Asks the oracle for the next clarifying question."""

    def __init__(self, oracle: InferenceOracle):
        self.oracle = oracle

    def next_question(
        self,
        transcript: Transcript,
        facts: VehicleFacts,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        missing = missing_facts(facts) or ["any detail the customer left unclear"]
        return self.oracle.generate(
            QUESTION_PROMPT.format(
                missing="; ".join(missing),
                conversation=format_transcript(transcript),
            ),
            cancel_event=cancel_event,
        )
