"""
API routes package
"""
from policybot.api.routes import chat

__all__ = [
    "chat",
]
