"""
Structured JSON logging for sai_client.

Configured once on import: stdlib logging carries the records, structlog builds
the event dicts. Every string field passes through `redact_str` before it is
rendered, so access tokens, refresh tokens, DPoP proofs and client secrets never
reach a sink.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from sai_client.config import get_settings

REDACTED = "***REDACTED***"
LOG_FILE_NAME = "sai-client.log"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
subject_id_var: ContextVar[str | None] = ContextVar("subject_id", default=None)


@contextmanager
def log_context(*, request_id: str | None = None, subject_id: str | None = None) -> Iterator[None]:
    """Tag every event logged inside the block with the given request and subject."""
    resets = (request_id_var.set(request_id), subject_id_var.set(subject_id))
    try:
        yield
    finally:
        subject_id_var.reset(resets[1])
        request_id_var.reset(resets[0])


# (pattern, replacement) applied in order; authorization values before generic key=value.
_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?i)([a-z][a-z0-9+\-.]*://)[^:@/\s]+:[^@/\s]+@"), rf"\1{REDACTED}@"),
    (re.compile(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\b"), REDACTED),
    (re.compile(r"(?i)\b(Bearer|DPoP)\s+[A-Za-z0-9_\-.~+/=]+"), rf"\1 {REDACTED}"),
    (re.compile(r"(?i)\bBasic\s+[A-Za-z0-9_\-+/=]+"), f"Basic {REDACTED}"),
    (
        re.compile(
            r"(?i)\b(access_token|refresh_token|id_token|client_secret|code_verifier|code|token|secret|password)"
            r"\b\s*[=:]\s*[^\s,;&]+"
        ),
        rf"\1={REDACTED}",
    ),
]

# Configured secrets shorter than this are not literal-matched (too many false hits).
_MIN_LITERAL_LEN = 8


def _configured_secrets() -> set[str]:
    try:
        secret = get_settings().secret
    except Exception:
        # Logging must keep working while the settings themselves are broken.
        return set()
    values = set()
    for name in ("client_secret", "access_token", "refresh_token"):
        field = getattr(secret, name, None)
        raw = field.get_secret_value() if field is not None else ""
        if len(raw) >= _MIN_LITERAL_LEN:
            values.add(raw)
    return values


def redact_str(text: str) -> str:
    for literal in _configured_secrets():
        text = text.replace(literal, REDACTED)
    for pattern, replacement in _PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact_str(value)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, var in (("request_id", request_id_var), ("subject_id", subject_id_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "event" in event_dict and "msg" not in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]


def _handlers() -> list[logging.Handler]:
    s = get_settings()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if s.log_dir is not None:
        path = Path(s.log_dir) / LOG_FILE_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=str(path),
                maxBytes=int(s.log_max_bytes),
                backupCount=int(s.log_backup_count),
                encoding="utf-8",
            )
        )
    return handlers


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    root = logging.getLogger()
    root.setLevel(str(get_settings().log_level).upper())

    # configure once per process, however often this module is imported
    if not getattr(root, "_sai_client_structlog_configured", False):
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
        for handler in _handlers():
            handler.setFormatter(formatter)
            root.addHandler(handler)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.PositionalArgumentsFormatter(),
                *_shared_processors(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        root._sai_client_structlog_configured = True
    return structlog.get_logger("sai_client")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """Change the level of the root logger and its handlers (CLI `--log-level`)."""
    lvl = logging.getLevelName(str(level).upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    logging.getLogger().setLevel(lvl)
    for handler in logging.getLogger().handlers:
        handler.setLevel(lvl)
