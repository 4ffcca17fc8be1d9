"""
Logging configuration with masking for credentials
"""
import logging
import re

from policybot.core.config import settings


# Patterns to mask in logs
MASK_PATTERNS = [
    (r'"?aws_secret_access_key"?\s*[:=]\s*"?[^",\s]+"?', 'aws_secret_access_key=***'),
    (r'"?api_key"?\s*[:=]\s*"?[^",\s]+"?', 'api_key=***'),
    (r'"?secret_key"?\s*[:=]\s*"?[^",\s]+"?', 'secret_key=***'),
    (r'Bearer\s+[A-Za-z0-9._\-]+', 'Bearer ***'),
    (r'\bsk-lf-[A-Za-z0-9\-]+', 'sk-lf-***'),
]


class MaskingFormatter(logging.Formatter):
    """Custom formatter that masks credentials."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for pattern, replacement in MASK_PATTERNS:
            message = re.sub(pattern, replacement, message, flags=re.IGNORECASE)
        return message


def setup_logging() -> logging.Logger:
    """Configure application logging."""
    logger = logging.getLogger("policybot")
    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Re-imports must not stack handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    formatter = MaskingFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger


# Global logger instance
logger = setup_logging()


def get_logger(name: str) -> logging.Logger:
    """Get a child of the application logger."""
    if name.startswith("policybot."):
        name = name[len("policybot."):]
    return logger.getChild(name)
