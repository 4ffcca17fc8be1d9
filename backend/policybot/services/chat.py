"""
Chat Service - runs conversation turns for the chat API

The service is stateless: callers pass the full history on every call and
get the updated history back.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, List, Optional, Sequence

from policybot.core.config import settings
from policybot.core.langfuse_handler import get_langfuse_handler
from policybot.core.logging import logger
from policybot.orchestration.graph import ConversationOrchestrator
from policybot.orchestration.routing import get_llm
from policybot.orchestration.state import MessageType, Transcript
from policybot.services.llm import (
    FactExtractor,
    InferenceOracle,
    LLMOracle,
    OptInGate,
    OracleError,
    QuestionPlanner,
    RecommendationRenderer,
    SuggestionService,
)
from policybot.services.retry import BackoffPolicy


class ChatValidationError(Exception):
    """A required request field is missing."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InternalError(Exception):
    """A turn could not be completed; safe to show to the customer."""

    DEFAULT_MESSAGE = "Sorry, something went wrong on our side. Please try again in a moment."

    def __init__(self, message: str = DEFAULT_MESSAGE, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@dataclass
class TurnResult:
    response: str
    message_type: MessageType
    history: Transcript


@dataclass
class SuggestionResult:
    recommendations: str
    history: Transcript


def _missing_fields_message(missing: List[str]) -> str:
    if len(missing) == 1:
        return f"{missing[0]} is required"
    return " and ".join(missing) + " are required"


class ChatService:
    """Service for processing chat turns through the conversation graph."""

    def __init__(
        self,
        oracle: InferenceOracle,
        styled_recommendations: bool = False,
        turn_timeout: Optional[float] = None,
    ):
        self.oracle = oracle
        self.turn_timeout = turn_timeout
        self.orchestrator = ConversationOrchestrator(
            gate=OptInGate(oracle),
            extractor=FactExtractor(oracle),
            planner=QuestionPlanner(oracle),
            renderer=RecommendationRenderer(oracle, use_llm=styled_recommendations),
        )
        self.suggestions = SuggestionService(oracle)

    def start_chat(
        self,
        message: Optional[str] = None,
        history: Optional[Sequence] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TurnResult:
        """
        Open a conversation or answer the greeting.

        An empty message with no history produces the greeting. Otherwise the
        message is routed by the transcript shape, which sends replies to a
        fresh greeting through the opt-in gate.
        """
        history = tuple(history or ())
        if not (message or "").strip() and history:
            raise ChatValidationError(_missing_fields_message(["message"]))
        return self._run_turn(message or "", history, cancel_event)

    def continue_chat(
        self,
        message: Optional[str],
        history: Optional[Sequence],
        cancel_event: Optional[threading.Event] = None,
    ) -> TurnResult:
        """Handle a reply in an ongoing conversation; both fields are required."""
        missing = []
        if history is None:
            missing.append("history")
        if not (message or "").strip():
            missing.append("message")
        if missing:
            raise ChatValidationError(_missing_fields_message(missing))
        return self._run_turn(message, tuple(history), cancel_event)

    def get_recommendations(
        self,
        context: Optional[str],
        history: Optional[Sequence] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SuggestionResult:
        """Open-ended suggestions for a context; unrelated to policy eligibility."""
        if not (context or "").strip():
            raise ChatValidationError(_missing_fields_message(["context"]))

        try:
            with self._deadline(cancel_event) as event:
                text = self.suggestions.suggest(context, cancel_event=event)
        except OracleError as e:
            logger.error(f"Suggestion generation failed: {e}")
            raise InternalError(original_error=e) from e

        return SuggestionResult(recommendations=text, history=tuple(history or ()))

    @contextmanager
    def _deadline(self, cancel_event: Optional[threading.Event]) -> Iterator[Optional[threading.Event]]:
        """Yield the event that stops this call's retries, set by the caller or by the turn timeout."""
        event = cancel_event
        timer = None
        if self.turn_timeout:
            if event is None:
                event = threading.Event()
            timer = threading.Timer(self.turn_timeout, event.set)
            timer.daemon = True
            timer.start()
        try:
            yield event
        finally:
            if timer is not None:
                timer.cancel()

    def _run_turn(
        self,
        message: str,
        history: Transcript,
        cancel_event: Optional[threading.Event] = None,
    ) -> TurnResult:
        try:
            with self._deadline(cancel_event) as event:
                result = self.orchestrator.advance(message, history, cancel_event=event)
        except OracleError as e:
            logger.error(f"Conversation turn failed: {e}")
            raise InternalError(original_error=e) from e

        logger.info(
            f"Turn complete: message_type={result['message_type'].value} "
            f"history_length={len(result['transcript'])}"
        )
        return TurnResult(
            response=result["response"],
            message_type=result["message_type"],
            history=result["transcript"],
        )


@lru_cache()
def get_oracle() -> InferenceOracle:
    """Build the process-wide oracle client from settings."""
    handler = get_langfuse_handler()
    return LLMOracle(
        llm=get_llm(settings),
        retry_policy=BackoffPolicy(
            max_retries=settings.ORACLE_MAX_RETRIES,
            base_delay=settings.ORACLE_BASE_DELAY_SECONDS,
            retry_on=(OracleError,),
        ),
        callbacks=[handler] if handler else None,
    )


# Factory function for dependency injection
@lru_cache()
def get_chat_service() -> ChatService:
    """Get chat service instance."""
    return ChatService(
        get_oracle(),
        styled_recommendations=settings.RECOMMENDATION_STYLING,
        turn_timeout=settings.TURN_TIMEOUT_SECONDS,
    )
