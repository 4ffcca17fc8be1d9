"""
Chat API routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field, field_validator

from policybot.core import logger
from policybot.orchestration.state import Speaker, Transcript, Turn
from policybot.services.chat import (
    ChatService,
    ChatValidationError,
    InternalError,
    get_chat_service,
)

router = APIRouter()


# Request/Response schemas
class HistoryItem(BaseModel):
    role: str  # "user" or "model"
    content: str = Field(validation_alias=AliasChoices("content", "parts", "text"))

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value: str) -> str:
        value = value.strip().lower()
        if value == "assistant":
            return Speaker.ASSISTANT.value
        if value not in (Speaker.USER.value, Speaker.ASSISTANT.value):
            raise ValueError("role must be 'user' or 'model'")
        return value


class StartChatRequest(BaseModel):
    message: Optional[str] = None
    history: Optional[List[HistoryItem]] = None


class ContinueChatRequest(BaseModel):
    message: Optional[str] = None
    history: Optional[List[HistoryItem]] = None


class RecommendRequest(BaseModel):
    context: Optional[str] = None
    history: Optional[List[HistoryItem]] = None


class ChatResponse(BaseModel):
    response: str
    message_type: str
    history: List[HistoryItem]


class RecommendResponse(BaseModel):
    recommendations: str
    history: List[HistoryItem]


def to_transcript(history: Optional[List[HistoryItem]]) -> Optional[Transcript]:
    if history is None:
        return None
    return tuple(Turn(speaker=Speaker(item.role), text=item.content) for item in history)


def to_history(transcript: Transcript) -> List[HistoryItem]:
    return [HistoryItem(role=turn.speaker.value, content=turn.text) for turn in transcript]


def _bad_request(e: ChatValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


def _server_error(e: InternalError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


# Oracle retries block for up to a minute, so these run in the threadpool
@router.post("/v1/start", response_model=ChatResponse)
def start_chat(
    request: StartChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Start a conversation, or answer the greeting."""
    try:
        result = chat_service.start_chat(request.message, to_transcript(request.history))
    except ChatValidationError as e:
        raise _bad_request(e)
    except InternalError as e:
        raise _server_error(e)

    return ChatResponse(
        response=result.response,
        message_type=result.message_type.value,
        history=to_history(result.history),
    )


@router.post("/v1/continue", response_model=ChatResponse)
def continue_chat(
    request: ContinueChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Send the next customer message with the full history."""
    try:
        result = chat_service.continue_chat(request.message, to_transcript(request.history))
    except ChatValidationError as e:
        raise _bad_request(e)
    except InternalError as e:
        raise _server_error(e)

    return ChatResponse(
        response=result.response,
        message_type=result.message_type.value,
        history=to_history(result.history),
    )


@router.post("/v1/recommend", response_model=RecommendResponse)
def recommend(
    request: RecommendRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Open-ended suggestions for a conversation context."""
    try:
        result = chat_service.get_recommendations(request.context, to_transcript(request.history))
    except ChatValidationError as e:
        raise _bad_request(e)
    except InternalError as e:
        raise _server_error(e)

    logger.info("Suggestions generated")
    return RecommendResponse(
        recommendations=result.recommendations,
        history=to_history(result.history),
    )
