import logging
import os
import re

import colorlog

# -------------------------
# 1. Sensitive Patterns
# -------------------------
# Task parameters and error messages end up in log lines.
SENSITIVE_PATTERNS = [
    (r'(password|secret|key|token|auth)[=:\s]+(["\'])?([^\s"\']{3,})(["\'])?', r'\1=[REDACTED]'),
    (r'(--password|--api-key|--token)\s+([^\s]+)', r'\1 [REDACTED]'),
    (r'(://[^:]+:)([^@]+)(@)', r'\1[REDACTED]\3'),
]


# -------------------------
# 2. Redacting Formatter
# -------------------------
class RedactingFormatter(colorlog.ColoredFormatter):
    """
    Colored formatter that scrubs secrets before printing.
    """

    def format(self, record):
        scrubbed_msg = super().format(record)
        for pattern, replacement in SENSITIVE_PATTERNS:
            scrubbed_msg = re.sub(pattern, replacement, scrubbed_msg, flags=re.IGNORECASE)
        return scrubbed_msg


# -------------------------
# 3. Centralized Logging
# -------------------------
ROOT_LOGGER_NAME = "maintenance_runner"

logger = logging.getLogger(ROOT_LOGGER_NAME)
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))

handler = logging.StreamHandler()
handler.setFormatter(RedactingFormatter(
    "%(log_color)s[%(asctime)s] [%(levelname)-8s] [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
    reset=True,
    log_colors={
        'DEBUG':    'cyan',
        'INFO':     'green',
        'WARNING':  'yellow',
        'ERROR':    'red',
        'CRITICAL': 'red,bg_white',
    },
    style='%'
))

# Prevent duplicate handlers if re-imported
if not logger.handlers:
    logger.addHandler(handler)


def get_logger(component: str) -> logging.Logger:
    """Returns a child logger tagged with the emitting component."""
    return logger.getChild(component)


def set_level(level: str) -> None:
    logger.setLevel(level.upper())
