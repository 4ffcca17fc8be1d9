"""
Conversation Graph - per-turn state machine for the insurance intake

Every invocation handles exactly one turn: it takes the incoming message and
the caller-held transcript, appends the user turn (if any) and exactly one
assistant turn, and reports the message type. Nothing is remembered between
invocations.
"""
import threading
from typing import Optional

from langgraph.graph import StateGraph, END

from policybot.core.logging import get_logger
from policybot.orchestration.state import (
    ConversationPhase,
    ConversationState,
    FAREWELL_MESSAGE,
    FIRST_QUESTION,
    GREETING_MESSAGE,
    MessageType,
    Speaker,
    Transcript,
    Turn,
    infer_phase,
    last_assistant_turn,
)
from policybot.services.decision import decide_policies
from policybot.services.llm import (
    FactExtractor,
    OptInGate,
    QuestionPlanner,
    RecommendationRenderer,
)

logger = get_logger(__name__)


def _append(transcript: Transcript, speaker: Speaker, text: str) -> Transcript:
    return tuple(transcript) + (Turn(speaker=speaker, text=text),)


def route_next(state: ConversationState) -> str:
    """Determine next node based on state."""
    return state.get("next_step", END)


class ConversationOrchestrator:
    """
    Ties the opt-in gate, fact extractor, decision engine and renderer
    together. At most one oracle call is in flight at any time.
    """

    def __init__(
        self,
        gate: OptInGate,
        extractor: FactExtractor,
        planner: QuestionPlanner,
        renderer: RecommendationRenderer,
    ):
        self.gate = gate
        self.extractor = extractor
        self.planner = planner
        self.renderer = renderer
        self.graph = self.build_graph().compile()

    # Nodes

    def route(self, state: ConversationState) -> ConversationState:
        """Pick the transition for this turn from the message and transcript shape."""
        message = (state.get("message") or "").strip()
        transcript = tuple(state.get("transcript") or ())
        phase = infer_phase(transcript)

        if not message:
            if transcript:
                # A bare poll mid-conversation has nothing to act on
                raise ValueError("message is required to continue a conversation")
            return {**state, "transcript": transcript, "next_step": "greet"}

        if not transcript:
            # Replying to a greeting the client showed without asking for it
            transcript = _append(transcript, Speaker.ASSISTANT, GREETING_MESSAGE)

        transcript = _append(transcript, Speaker.USER, message)
        logger.info(f"Routing turn in phase {phase.value}")

        if phase == ConversationPhase.DECLINED:
            next_step = "decline"
        elif phase == ConversationPhase.RECOMMENDED:
            next_step = "repeat_recommendation"
        elif phase in (ConversationPhase.GREETING, ConversationPhase.AWAITING_OPT_IN):
            next_step = "opt_in"
        else:
            next_step = "gather"

        return {**state, "message": message, "transcript": transcript, "next_step": next_step}

    def greet(self, state: ConversationState) -> ConversationState:
        return self._reply(state, GREETING_MESSAGE, MessageType.GREETING, ConversationPhase.AWAITING_OPT_IN)

    def opt_in(self, state: ConversationState) -> ConversationState:
        opted_in = self.gate.decide(state["message"], cancel_event=state.get("cancel_event"))
        return {**state, "next_step": "first_question" if opted_in else "decline"}

    def decline(self, state: ConversationState) -> ConversationState:
        return self._reply(state, FAREWELL_MESSAGE, MessageType.FAREWELL, ConversationPhase.DECLINED)

    def first_question(self, state: ConversationState) -> ConversationState:
        return self._reply(state, FIRST_QUESTION, MessageType.QUESTION, ConversationPhase.GATHERING)

    def gather(self, state: ConversationState) -> ConversationState:
        report = self.extractor.analyze(state["transcript"], cancel_event=state.get("cancel_event"))
        return {
            **state,
            "facts": report.facts,
            "sufficient": report.sufficient,
            "next_step": "recommend" if report.sufficient else "ask",
        }

    def recommend(self, state: ConversationState) -> ConversationState:
        facts = state["facts"]
        # The engine's answer is what gets rendered, whatever the oracle hinted
        policies = decide_policies(facts)
        text = self.renderer.render(facts, policies, cancel_event=state.get("cancel_event"))
        logger.info(f"Recommending {sorted(p.value for p in policies)}")
        return self._reply(
            {**state, "policies": policies},
            text,
            MessageType.RECOMMENDATION,
            ConversationPhase.RECOMMENDED,
        )

    def repeat_recommendation(self, state: ConversationState) -> ConversationState:
        # Already recommended; say it again rather than re-deciding
        previous = last_assistant_turn(state["transcript"])
        return self._reply(state, previous.text, MessageType.RECOMMENDATION, ConversationPhase.RECOMMENDED)

    def ask(self, state: ConversationState) -> ConversationState:
        question = self.planner.next_question(
            state["transcript"],
            state["facts"],
            cancel_event=state.get("cancel_event"),
        )
        return self._reply(state, question, MessageType.QUESTION, ConversationPhase.GATHERING)

    def _reply(
        self,
        state: ConversationState,
        text: str,
        message_type: MessageType,
        phase: ConversationPhase,
    ) -> ConversationState:
        return {
            **state,
            "transcript": _append(state["transcript"], Speaker.ASSISTANT, text),
            "response": text,
            "message_type": message_type,
            "phase": phase,
            "next_step": END,
        }

    # Graph

    def build_graph(self) -> StateGraph:
        """Build the conversation graph."""
        workflow = StateGraph(ConversationState)

        workflow.add_node("route", self.route)
        workflow.add_node("greet", self.greet)
        workflow.add_node("opt_in", self.opt_in)
        workflow.add_node("decline", self.decline)
        workflow.add_node("first_question", self.first_question)
        workflow.add_node("gather", self.gather)
        workflow.add_node("recommend", self.recommend)
        workflow.add_node("ask", self.ask)
        workflow.add_node("repeat_recommendation", self.repeat_recommendation)

        workflow.set_entry_point("route")

        workflow.add_conditional_edges(
            "route",
            route_next,
            {
                "greet": "greet",
                "opt_in": "opt_in",
                "decline": "decline",
                "repeat_recommendation": "repeat_recommendation",
                "gather": "gather",
            },
        )
        workflow.add_conditional_edges(
            "opt_in",
            route_next,
            {
                "first_question": "first_question",
                "decline": "decline",
            },
        )
        workflow.add_conditional_edges(
            "gather",
            route_next,
            {
                "recommend": "recommend",
                "ask": "ask",
            },
        )

        for terminal in ("greet", "decline", "first_question", "recommend", "ask", "repeat_recommendation"):
            workflow.add_edge(terminal, END)

        return workflow

    def advance(
        self,
        message: str,
        transcript: Transcript,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConversationState:
        """
        Run one turn.

        Args:
            message: The incoming customer message, empty to start
            transcript: Prior turns held by the caller
            cancel_event: Once set, oracle retries for this turn stop waiting

        Returns:
            Final graph state with ``response``, ``message_type`` and the
            updated ``transcript``
        """
        return self.graph.invoke({
            "message": message or "",
            "transcript": tuple(transcript or ()),
            "cancel_event": cancel_event,
        })
