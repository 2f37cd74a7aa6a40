"""structlog setup for the throp CLI and monitor daemon."""

import logging
import re
import sys

import structlog

# Secrets that show up in config dumps, request errors and redis URLs.
_REDACT_PATTERNS = [
    (re.compile(r"(sk-ant-[a-zA-Z0-9_-]{10})[a-zA-Z0-9_-]*"), r"\1...REDACTED"),
    (re.compile(r"(sk-[a-zA-Z0-9_-]{6})[a-zA-Z0-9_-]{20,}"), r"\1...REDACTED"),
    (re.compile(r"(tvly-)[a-zA-Z0-9_-]{8,}"), r"\1REDACTED"),
    (re.compile(r"(pplx-)[a-zA-Z0-9_-]{8,}"), r"\1REDACTED"),
    # X app tokens are URL-encoded
    (re.compile(r"(Bearer\s+)[a-zA-Z0-9_.%=-]{20,}"), r"\1REDACTED"),
    (re.compile(r"(redis://[^:/@\s]*:)[^@\s]+(@)"), r"\1REDACTED\2"),
    (re.compile(r"((?:api[_-]?key|token)['\"]?\s*[:=]\s*['\"]?)[a-zA-Z0-9_%-]{10,}"), r"\1REDACTED"),
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "REDACTED@email"),
]

# Third-party loggers that log full request URLs at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Mask tokens, API keys and e-mail addresses in every string field."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            for pattern, replacement in _REDACT_PATTERNS:
                value = pattern.sub(replacement, value)
            event_dict[key] = value
    return event_dict


def _renderer(json_mode: bool):
    if json_mode:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(json_mode: bool = False, level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        json_mode: One JSON object per line, for `throp monitor` under a
                   process supervisor. Otherwise a human console format.
        level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
    ]

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from redis, tenacity and the SDKs get the same fields and masking.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_mode),
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
