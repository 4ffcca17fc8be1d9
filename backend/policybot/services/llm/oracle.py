"""
Inference Oracle Client

Narrow interface over the LLM. Consumers ask for either a value that
conforms to a pydantic schema (``classify``) or free text (``generate``).
Every call is wrapped in the bounded backoff policy.
"""
import json
import re
import threading
from typing import List, Literal, Optional, Protocol, Type, TypeVar

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field, ValidationError

from policybot.core.logging import get_logger
from policybot.services.retry import BackoffPolicy

logger = get_logger(__name__)


S = TypeVar("S", bound=BaseModel)


class OracleError(Exception):
    """Base class for oracle failures."""


class OracleUnavailable(OracleError):
    """The LLM provider could not be reached or rejected the call."""


class OracleMalformedResponse(OracleError):
    """The LLM answered, but not in the requested shape."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


# Structured answer schemas

class OptInVerdict(BaseModel):
    """Whether the customer agreed to answer questions."""
    opted_in: bool = Field(
        description="true only for clear agreement; false for refusal, uncertainty or anything ambiguous"
    )


class FactAnalysis(BaseModel):
    """Vehicle facts confirmed so far in the conversation."""
    truck_status: Literal["confirmed_yes", "confirmed_no", "unknown"] = Field(
        description="Whether the customer explicitly confirmed or denied the vehicle is a truck"
    )
    racing_status: Literal["confirmed_yes", "confirmed_no", "unknown"] = Field(
        description="Whether the customer explicitly confirmed or denied the vehicle is a racing car"
    )
    age_status: Literal["confirmed_old", "confirmed_new", "unknown"] = Field(
        description="confirmed_old if explicitly over 10 years old, confirmed_new if 10 years or newer"
    )
    policy_recommendations: List[str] = Field(
        default_factory=list,
        description="Eligible policy codes from MBI, CCI, 3RDP",
    )


class InferenceOracle(Protocol):
    """What the conversation components need from an LLM."""

    def classify(
        self,
        prompt: str,
        schema: Type[S],
        cancel_event: Optional[threading.Event] = None,
    ) -> S:
        ...

    def generate(self, prompt: str, cancel_event: Optional[threading.Event] = None) -> str:
        ...


SYSTEM_PROMPT = """You are Tina, a professional and friendly car insurance consultant.
Respond naturally and directly, without Markdown or any special formatting.
Never reveal internal systems, technologies or models."""

JSON_INSTRUCTIONS = """
Respond with ONLY a JSON object matching this JSON schema, nothing else:
{schema}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_structured(text: str, schema: Type[S]) -> S:
    """Parse an LLM reply into ``schema``."""
    cleaned = _FENCE_RE.sub("", text.strip()).strip()

    # Tolerate chatter before and after the object
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise OracleMalformedResponse("No JSON object in response", raw=text)
    cleaned = cleaned[start:end + 1]

    try:
        return schema.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as e:
        raise OracleMalformedResponse(f"Response does not match {schema.__name__}: {e}", raw=text) from e


def clean_free_text(text: str) -> str:
    """Strip Markdown emphasis the model tends to add."""
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"^#+\s*", "", text, flags=re.MULTILINE)
    return text.strip()


class LLMOracle:
    """
    InferenceOracle backed by a LangChain chat model.

    Calls are made one at a time; the backoff policy blocks the calling
    request only.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        retry_policy: Optional[BackoffPolicy] = None,
        callbacks: Optional[list] = None,
    ):
        self.llm = llm
        self.retry_policy = retry_policy or BackoffPolicy(retry_on=(OracleError,))
        self.callbacks = callbacks or []

    def classify(
        self,
        prompt: str,
        schema: Type[S],
        cancel_event: Optional[threading.Event] = None,
    ) -> S:
        """
        Ask for a value conforming to ``schema``.

        Setting ``cancel_event`` stops the retry loop at its next wait.
        """
        full_prompt = prompt + JSON_INSTRUCTIONS.format(
            schema=json.dumps(schema.model_json_schema())
        )

        def attempt() -> S:
            return parse_structured(self._invoke(full_prompt), schema)

        return self.retry_policy.call(attempt, cancel_event=cancel_event)

    def generate(self, prompt: str, cancel_event: Optional[threading.Event] = None) -> str:
        """Ask for free text."""
        def attempt() -> str:
            text = clean_free_text(self._invoke(prompt))
            if not text:
                raise OracleMalformedResponse("Empty response")
            return text

        return self.retry_policy.call(attempt, cancel_event=cancel_event)

    def _invoke(self, prompt: str) -> str:
        messages = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]
        config = {"callbacks": self.callbacks} if self.callbacks else None

        try:
            response = self.llm.invoke(messages, config=config)
        except Exception as e:
            raise OracleUnavailable(f"LLM invocation failed: {e}") from e

        content = response.content
        if isinstance(content, list):
            # Some providers return content blocks
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content or ""
