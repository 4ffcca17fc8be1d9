"""
Core module exports
"""
from policybot.core.config import settings, get_settings
from policybot.core.logging import logger, get_logger

__all__ = [
    "settings",
    "get_settings",
    "logger",
    "get_logger",
]
