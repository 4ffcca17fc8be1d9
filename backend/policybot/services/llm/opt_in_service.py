"""
Opt-In Gate

Decides whether the customer agreed to answer questions. This is a bounded
AI task - output is a single boolean, and anything short of clear agreement
is a refusal.
"""
import threading
from typing import Optional

from policybot.core.logging import get_logger
from policybot.services.llm.oracle import InferenceOracle, OracleError, OptInVerdict

logger = get_logger(__name__)


OPT_IN_PROMPT = """The assistant asked the customer for permission to ask a few personal questions
so it can recommend a car insurance policy. Decide whether the customer agreed.

Rules:
- Clear agreement ("yes", "sure", "go ahead", "please help me") means opted_in = true
- Clear refusal ("no", "no thanks", "not interested") means opted_in = false
- Uncertainty or anything ambiguous ("not sure", "maybe later", "what is this?") means opted_in = false

Customer reply: "{utterance}"
"""


class OptInGate:
    """Fail-closed consent check."""

    def __init__(self, oracle: InferenceOracle):
        self.oracle = oracle

    def decide(self, utterance: str, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Args:
            utterance: The customer's reply to the greeting

        Returns:
            True only if the oracle confirmed clear agreement
        """
        if not utterance or not utterance.strip():
            return False

        try:
            verdict = self.oracle.classify(
                OPT_IN_PROMPT.format(utterance=utterance.strip()),
                OptInVerdict,
                cancel_event=cancel_event,
            )
        except OracleError as e:
            logger.warning(f"Opt-in classification failed, treating as declined: {e}")
            return False

        logger.info(f"Opt-in decision: {verdict.opted_in}")
        return verdict.opted_in is True
