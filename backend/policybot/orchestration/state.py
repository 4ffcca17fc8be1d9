"""
Shared state and types for the conversation graph
"""
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, TypedDict

from policybot.services.decision import PolicyId, PolicySet, VehicleFacts


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "model"


class MessageType(str, Enum):
    """Tells the client whether to keep collecting input."""
    GREETING = "greeting"
    QUESTION = "question"
    RECOMMENDATION = "recommendation"
    FAREWELL = "farewell"


class ConversationPhase(str, Enum):
    GREETING = "greeting"
    AWAITING_OPT_IN = "awaiting_opt_in"
    GATHERING = "gathering"
    RECOMMENDED = "recommended"
    DECLINED = "declined"


TERMINAL_PHASES = frozenset({ConversationPhase.RECOMMENDED, ConversationPhase.DECLINED})


@dataclass(frozen=True)
class Turn:
    speaker: Speaker
    text: str


Transcript = Tuple[Turn, ...]


GREETING_MESSAGE = (
    "Hi, I'm Tina, your personal car insurance consultant. "
    "I can recommend the insurance policy that best suits your vehicle. "
    "May I ask you a few personal questions to make sure I recommend the best policy for you?"
)

FAREWELL_MESSAGE = (
    "No problem at all, thank you for your time. "
    "If you change your mind, I'm always here to help. Have a great day, bye!"
)

FIRST_QUESTION = (
    "Great, let's get started! First, is the vehicle you'd like to insure a truck?"
)

_POLICY_CODE_RE = re.compile(r"\b(?:" + "|".join(re.escape(p.value) for p in PolicyId) + r")\b")

SCRIPTED_MESSAGES = frozenset({GREETING_MESSAGE, FAREWELL_MESSAGE, FIRST_QUESTION})


def last_assistant_turn(transcript: Transcript) -> Optional[Turn]:
    for turn in reversed(transcript):
        if turn.speaker == Speaker.ASSISTANT:
            return turn
    return None


def is_recommendation(text: str) -> bool:
    """True if an assistant message names a policy code, which only recommendations do."""
    return text not in SCRIPTED_MESSAGES and _POLICY_CODE_RE.search(text) is not None


def infer_phase(transcript: Transcript) -> ConversationPhase:
    """
    Work out where a conversation stands from the transcript alone.

    A conversation whose last assistant turn named a policy code has already
    been given its recommendation.
    """
    if not transcript:
        return ConversationPhase.GREETING

    previous = last_assistant_turn(transcript)
    if previous is not None and previous.text == FAREWELL_MESSAGE:
        return ConversationPhase.DECLINED

    if previous is not None and is_recommendation(previous.text):
        return ConversationPhase.RECOMMENDED

    if len(transcript) <= 1 or (previous is not None and previous.text == GREETING_MESSAGE):
        return ConversationPhase.AWAITING_OPT_IN

    return ConversationPhase.GATHERING


def format_transcript(transcript: Transcript) -> str:
    """Render a transcript for inclusion in a prompt."""
    lines = []
    for turn in transcript:
        who = "Customer" if turn.speaker == Speaker.USER else "Tina"
        lines.append(f"{who}: {turn.text}")
    return "\n".join(lines)


class ConversationState(TypedDict, total=False):
    """State flowing through the conversation graph for one turn."""
    # Input
    message: str
    transcript: Transcript

    # Fact analysis
    facts: Optional[VehicleFacts]
    sufficient: bool
    policies: PolicySet

    # Output
    response: str
    message_type: MessageType
    phase: ConversationPhase

    # Control
    next_step: str
    cancel_event: Optional[threading.Event]
