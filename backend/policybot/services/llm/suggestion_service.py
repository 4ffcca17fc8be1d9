"""
Open-ended suggestions for an arbitrary conversation context.
Not part of policy eligibility.
"""
import threading
from typing import Optional

from policybot.services.llm.oracle import InferenceOracle


SUGGESTION_PROMPT = """Based on the conversation below, provide 3-5 relevant recommendations or suggestions
that could help continue or enhance the discussion. Make the recommendations specific and actionable.

Conversation:
{context}

Format your response as a natural, friendly list of suggestions without any special formatting or markdown."""


class SuggestionService:
    def __init__(self, oracle: InferenceOracle):
        self.oracle = oracle

    def suggest(self, context: str, cancel_event: Optional[threading.Event] = None) -> str:
        return self.oracle.generate(
            SUGGESTION_PROMPT.format(context=context.strip()),
            cancel_event=cancel_event,
        )
