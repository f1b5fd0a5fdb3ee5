"""
Structured logging for the gateway.

Events are rendered by structlog on top of stdlib logging. Per-request
fields (``request_id``, ``client_ip``) live in structlog context variables,
bound once by the request middleware, so every service log emitted while a
request is routed carries them without passing them around.

Credential secrets must never reach a log line: known secret fields are
masked by a processor, and the HTTP client loggers are kept at WARNING
because Gemini credentials travel in the request URL.
"""
import sys
import logging
import re
from pathlib import Path
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor

from keyhub import __version__
from keyhub.core.config import settings

SECRET_FIELDS = frozenset({"api_key", "authorization", "x-api-key", "secret", "password"})

# Loggers that would print upstream URLs (and so Gemini keys) at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

_KEY_PARAM = re.compile(r"([?&]key=)[^&\s]+")


def mask_secret(value: Any) -> str:
    """Keep only the last four characters of a secret."""
    text = str(value)
    if len(text) <= 8:
        return "***"
    return f"***{text[-4:]}"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app"] = settings.app_name
    event_dict["env"] = settings.app_env
    event_dict["version"] = __version__
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential secrets in known fields and ``key=`` URL parameters."""
    for name, value in event_dict.items():
        if value is None:
            continue
        if name.lower() in SECRET_FIELDS:
            event_dict[name] = mask_secret(value)
        elif isinstance(value, str) and "key=" in value:
            event_dict[name] = _KEY_PARAM.sub(r"\1***", value)
    return event_dict


def bind_request_context(request_id: str, **values: Any) -> None:
    """Start a fresh logging context for one inbound request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def build_processors(log_format: str) -> List[Processor]:
    """Processor chain for ``json`` or ``text`` output."""
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_app_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ])
    else:
        processors.extend([
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=settings.is_development)
        ])
    return processors


def setup_logging() -> None:
    """
    Configure stdlib handlers (stdout plus the log file) and structlog.
    """
    log_file = Path(settings.log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper()),
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file))
        ]
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=build_processors(settings.log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


setup_logging()
