"""
Tests for the conversation state machine.
"""

import threading
import time

import pytest
from policybot.orchestration.graph import ConversationOrchestrator
from policybot.orchestration.state import (
    ConversationPhase,
    FAREWELL_MESSAGE,
    FIRST_QUESTION,
    GREETING_MESSAGE,
    MessageType,
    Speaker,
    Turn,
    infer_phase,
)
from policybot.services.chat import ChatService, ChatValidationError, InternalError
from policybot.services.llm import (
    FactExtractor,
    LLMOracle,
    OptInGate,
    OracleError,
    OracleUnavailable,
    QuestionPlanner,
    RecommendationRenderer,
)
from policybot.services.retry import BackoffPolicy

from tests.stubs import FailingLLM, StubOracle, make_analysis


def gathering_history(*user_messages):
    """History after opting in, followed by the given customer replies."""
    history = [
        Turn(Speaker.ASSISTANT, GREETING_MESSAGE),
        Turn(Speaker.USER, "Yes, please help"),
        Turn(Speaker.ASSISTANT, FIRST_QUESTION),
    ]
    for text in user_messages:
        history.append(Turn(Speaker.USER, text))
        history.append(Turn(Speaker.ASSISTANT, "Got it. Anything else?"))
    return tuple(history)


def build_orchestrator(oracle: StubOracle) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        gate=OptInGate(oracle),
        extractor=FactExtractor(oracle),
        planner=QuestionPlanner(oracle),
        renderer=RecommendationRenderer(oracle),
    )


class TestInferPhase:
    """Test phase derivation from transcript shape."""

    def test_empty(self):
        assert infer_phase(()) == ConversationPhase.GREETING

    def test_after_greeting(self):
        assert infer_phase((Turn(Speaker.ASSISTANT, GREETING_MESSAGE),)) == ConversationPhase.AWAITING_OPT_IN

    def test_single_turn_of_anything(self):
        assert infer_phase((Turn(Speaker.ASSISTANT, "Hello!"),)) == ConversationPhase.AWAITING_OPT_IN

    def test_after_farewell(self):
        history = (
            Turn(Speaker.ASSISTANT, GREETING_MESSAGE),
            Turn(Speaker.USER, "No thanks"),
            Turn(Speaker.ASSISTANT, FAREWELL_MESSAGE),
        )
        assert infer_phase(history) == ConversationPhase.DECLINED

    def test_gathering(self):
        assert infer_phase(gathering_history()) == ConversationPhase.GATHERING

    def test_after_recommendation(self):
        history = gathering_history() + (
            Turn(Speaker.USER, "It's a truck"),
            Turn(Speaker.ASSISTANT, "I recommend Third-Party Liability (3RDP)."),
        )
        assert infer_phase(history) == ConversationPhase.RECOMMENDED

    def test_policy_code_inside_a_word_is_not_a_recommendation(self):
        history = gathering_history() + (
            Turn(Speaker.USER, "Not a truck"),
            Turn(Speaker.ASSISTANT, "Has the car been in any accidents?"),
        )
        assert infer_phase(history) == ConversationPhase.GATHERING


class TestStartChat:
    """Test greeting and opt-in transitions."""

    def test_empty_message_greets(self):
        result = ChatService(StubOracle()).start_chat("")

        assert result.message_type == MessageType.GREETING
        assert len(result.history) == 1
        assert result.history[0] == Turn(Speaker.ASSISTANT, GREETING_MESSAGE)

    def test_greeting_makes_no_oracle_call(self):
        oracle = StubOracle()
        ChatService(oracle).start_chat(None)
        assert oracle.calls == []

    def test_opt_in_asks_first_question(self):
        result = ChatService(StubOracle(opt_in=True)).start_chat("Yes, please help")

        assert result.message_type == MessageType.QUESTION
        assert len(result.history) == 3
        assert [t.speaker for t in result.history] == [Speaker.ASSISTANT, Speaker.USER, Speaker.ASSISTANT]
        assert "truck" in result.response.lower()

    def test_decline_says_farewell(self):
        result = ChatService(StubOracle(opt_in=False)).start_chat("No thanks")

        assert result.message_type == MessageType.FAREWELL
        assert "thank you" in result.response.lower()
        assert "bye" in result.response.lower()

    def test_gate_failure_declines_gracefully(self, failing_oracle):
        result = ChatService(failing_oracle).start_chat("Yes please")
        assert result.message_type == MessageType.FAREWELL

    def test_reply_to_existing_greeting(self):
        greeting = ChatService(StubOracle()).start_chat("")
        result = ChatService(StubOracle(opt_in=True)).start_chat("Sure", greeting.history)

        assert result.message_type == MessageType.QUESTION
        assert len(result.history) == 3

    def test_continue_after_greeting_goes_through_gate(self):
        oracle = StubOracle(opt_in=False)
        history = (Turn(Speaker.ASSISTANT, GREETING_MESSAGE),)

        result = ChatService(oracle).continue_chat("Not sure about this yet", history)

        assert result.message_type == MessageType.FAREWELL
        assert oracle.calls[0][1] == "OptInVerdict"


class TestGathering:
    """Test fact gathering and recommendation transitions."""

    def test_truck_recommendation(self):
        oracle = StubOracle(facts=make_analysis(truck="confirmed_yes", racing="confirmed_no", policies=["3RDP"]))
        result = ChatService(oracle).continue_chat("It's a truck, not a racing car", gathering_history())

        assert result.message_type == MessageType.RECOMMENDATION
        assert "3RDP" in result.response
        assert "MBI" not in result.response
        assert "CCI" not in result.response

    def test_old_car_recommendation_never_mentions_cci(self):
        oracle = StubOracle(facts=make_analysis(
            truck="confirmed_no", racing="confirmed_no", age="confirmed_old", policies=["MBI", "CCI"],
        ))
        history = gathering_history("No, it's not a truck", "No, it's just a regular car")

        result = ChatService(oracle).continue_chat("It's a 2010 model, about 14 years old", history)

        assert result.message_type == MessageType.RECOMMENDATION
        assert "MBI" in result.response
        assert "3RDP" in result.response
        assert "CCI" not in result.response

    def test_insufficient_asks_clarifying_question(self):
        oracle = StubOracle(
            facts=make_analysis(truck="confirmed_no"),
            questions=["Is it a racing car?"],
        )
        history = gathering_history()

        result = ChatService(oracle).continue_chat("No, not a truck", history)

        assert result.message_type == MessageType.QUESTION
        assert result.response == "Is it a racing car?"
        assert len(result.history) == len(history) + 2
        assert "Customer: No, not a truck" in oracle.calls[-1][2]

    def test_truck_owner_is_still_asked_about_racing(self):
        oracle = StubOracle(
            facts=make_analysis(truck="confirmed_yes"),
            questions=["Is your truck ever used for racing?"],
        )

        result = ChatService(oracle).continue_chat("It's a truck", gathering_history())

        assert result.message_type == MessageType.QUESTION
        assert "whether the vehicle is a racing car" in oracle.calls[-1][2]
        assert "10 years old" not in oracle.calls[-1][2]

    def test_extractor_failure_still_fails_turn_on_question(self, failing_oracle):
        """Extraction fails open, but question generation has no fallback."""
        with pytest.raises(InternalError):
            ChatService(failing_oracle).continue_chat("It's a truck", gathering_history())

    def test_extractor_failure_with_working_generator(self):
        class ExtractionDown(StubOracle):
            def classify(self, prompt, schema, cancel_event=None):
                raise OracleUnavailable("down")

        oracle = ExtractionDown(questions=["Could you tell me more about your vehicle?"])
        result = ChatService(oracle).continue_chat("It's a truck", gathering_history())

        assert result.message_type == MessageType.QUESTION

    def test_history_is_append_only(self):
        history = gathering_history("No, it's not a truck")
        oracle = StubOracle(facts=make_analysis(truck="confirmed_no"))

        result = ChatService(oracle).continue_chat("Still not a truck", history)

        assert result.history[:len(history)] == history
        assert result.history[len(history)] == Turn(Speaker.USER, "Still not a truck")


class TestTerminalPhases:
    """Test behaviour after the conversation has ended."""

    def test_message_after_farewell_repeats_farewell(self):
        oracle = StubOracle(opt_in=True)
        declined = ChatService(StubOracle(opt_in=False)).start_chat("No thanks")

        result = ChatService(oracle).continue_chat("Actually wait", declined.history)

        assert result.message_type == MessageType.FAREWELL
        assert len(result.history) == len(declined.history) + 2
        assert oracle.calls == []


    def test_message_after_recommendation_repeats_it(self):
        oracle = StubOracle(facts=make_analysis(truck="confirmed_yes", racing="confirmed_no"))
        recommended = ChatService(oracle).continue_chat("It's a truck, not a racing car", gathering_history())
        later = StubOracle()

        result = ChatService(later).continue_chat("Thanks! What about my other car?", recommended.history)

        assert result.message_type == MessageType.RECOMMENDATION
        assert result.response == recommended.response
        assert len(result.history) == len(recommended.history) + 2
        assert later.calls == []


class TestCancellation:
    """Test that a turn stops retrying once it is cancelled."""

    @staticmethod
    def slow_oracle(llm) -> LLMOracle:
        return LLMOracle(llm, retry_policy=BackoffPolicy(base_delay=30.0, retry_on=(OracleError,)))

    def test_cancel_event_reaches_the_oracle(self):
        oracle = StubOracle(facts=make_analysis(truck="confirmed_no"))
        cancelled = threading.Event()

        ChatService(oracle).continue_chat("Not a truck", gathering_history(), cancel_event=cancelled)

        assert len(oracle.cancel_events) == 2
        assert all(event is cancelled for event in oracle.cancel_events)

    def test_cancelled_turn_fails_without_retrying(self):
        llm = FailingLLM()
        cancelled = threading.Event()
        cancelled.set()

        with pytest.raises(InternalError):
            ChatService(self.slow_oracle(llm)).continue_chat(
                "It's a truck", gathering_history(), cancel_event=cancelled,
            )

        # One attempt each for fact analysis and the follow-up question
        assert llm.calls == 2

    def test_turn_timeout_stops_retry_wait(self):
        llm = FailingLLM()
        service = ChatService(self.slow_oracle(llm), turn_timeout=0.05)

        started = time.monotonic()
        with pytest.raises(InternalError):
            service.continue_chat("It's a truck", gathering_history())

        assert time.monotonic() - started < 10
        assert llm.calls == 2

    def test_suggestions_honour_cancel_event(self):
        llm = FailingLLM()
        cancelled = threading.Event()
        cancelled.set()

        with pytest.raises(InternalError):
            ChatService(self.slow_oracle(llm)).get_recommendations("car chat", cancel_event=cancelled)

        assert llm.calls == 1


class TestInternalError:
    def test_defaults(self):
        error = InternalError()

        assert error.message == InternalError.DEFAULT_MESSAGE
        assert error.original_error is None

    def test_keeps_original_error(self):
        cause = OracleUnavailable("provider down")
        assert InternalError(original_error=cause).original_error is cause


class TestValidation:
    """Test required-field checks."""

    def test_continue_requires_both(self):
        with pytest.raises(ChatValidationError) as exc_info:
            ChatService(StubOracle()).continue_chat(None, None)
        assert exc_info.value.message == "history and message are required"

    def test_continue_requires_message(self):
        with pytest.raises(ChatValidationError) as exc_info:
            ChatService(StubOracle()).continue_chat("  ", gathering_history())
        assert exc_info.value.message == "message is required"

    def test_start_without_message_mid_conversation(self):
        with pytest.raises(ChatValidationError):
            ChatService(StubOracle()).start_chat("", gathering_history())


class TestOrchestratorDirect:
    def test_advance_returns_phase(self):
        orchestrator = build_orchestrator(StubOracle(opt_in=True))
        state = orchestrator.advance("Yes", ())

        assert state["phase"] == ConversationPhase.GATHERING
        assert state["response"] == FIRST_QUESTION
