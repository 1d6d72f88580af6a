import logging
import os
import re
import sys

from calsync.core.config import settings

LOG_FILE_NAME = "calsync.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_SECRET_PATTERNS = [
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1[REDACTED]"),
    # "accessToken": "...", 'refresh_token': '...', x-cal-secret-key: ...
    (
        re.compile(
            r"""(["']?(?:access_?token|refresh_?token|x-cal-secret-key|client_?secret)["']?\s*[:=]\s*["']?)[^"',\s}]+""",
            re.IGNORECASE,
        ),
        r"\1[REDACTED]",
    ),
    # Bare JWTs
    (re.compile(r"eyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+"), "[REDACTED_JWT]"),
]


def redact_secrets(message: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecretRedactingFilter(logging.Filter):
    """Masks OAuth tokens and client secrets in any record that slips one in."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def check_folder_exist(path: str):
    if not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def setup_logging():
    """Configure the root logger once at startup."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)
    redactor = SecretRedactingFilter()

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    handlers.append(stream_handler)

    if settings.LOG_DIR:
        check_folder_exist(settings.LOG_DIR)
        file_handler = logging.FileHandler(os.path.join(settings.LOG_DIR, LOG_FILE_NAME), encoding="utf-8")
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        root_logger.addHandler(handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
