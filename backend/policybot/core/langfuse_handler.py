"""
LangFuse Observability Integration
Provides tracing for oracle (LLM) calls.
"""
from typing import Any, Optional

from policybot.core.config import settings
from policybot.core.logging import logger


_langfuse_handler: Optional[Any] = None


def get_langfuse_handler() -> Optional[Any]:
    """
    Get LangFuse callback handler for LLM observability.
    Returns None if LangFuse is not configured.
    """
    global _langfuse_handler

    if not settings.LANGFUSE_PUBLIC_KEY:
        return None

    if _langfuse_handler is None:
        from langfuse import Langfuse
        from langfuse.langchain import CallbackHandler

        Langfuse(
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
            host=settings.LANGFUSE_HOST,
        )
        _langfuse_handler = CallbackHandler(public_key=settings.LANGFUSE_PUBLIC_KEY)
        logger.info("LangFuse handler initialized successfully")

    return _langfuse_handler


def flush_langfuse() -> None:
    """Flush pending traces to LangFuse."""
    if _langfuse_handler is None:
        return

    from langfuse import get_client

    try:
        get_client().flush()
    except Exception as e:
        logger.warning(f"Failed to flush LangFuse: {e}")
