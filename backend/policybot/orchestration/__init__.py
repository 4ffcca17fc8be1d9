"""
Orchestration package - conversation state and LLM provider routing

The conversation graph lives in ``policybot.orchestration.graph``.
"""
from policybot.orchestration.routing import get_llm, LLMProvider
from policybot.orchestration.state import (
    ConversationPhase,
    ConversationState,
    MessageType,
    Speaker,
    Transcript,
    Turn,
    GREETING_MESSAGE,
    FAREWELL_MESSAGE,
    FIRST_QUESTION,
    infer_phase,
    format_transcript,
)

__all__ = [
    # Routing
    "get_llm",
    "LLMProvider",
    # State
    "ConversationPhase",
    "ConversationState",
    "MessageType",
    "Speaker",
    "Transcript",
    "Turn",
    "GREETING_MESSAGE",
    "FAREWELL_MESSAGE",
    "FIRST_QUESTION",
    "infer_phase",
    "format_transcript",
]
