from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any


_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(value: str | None) -> None:
    _request_id.set(value)


def get_request_id() -> str | None:
    return _request_id.get()


def _fmt(value: Any) -> str:
    text = "" if value is None else str(value)
    if " " in text:
        return '"' + text.replace('"', "'") + '"'
    return text


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """
    One `event key=value ...` line, tagged with the current request id.
    """
    parts = [event]
    rid = get_request_id()
    if rid:
        parts.append(f"request_id={rid}")
    for key, value in fields.items():
        parts.append(f"{key}={_fmt(value)}")
    logger.log(level, " ".join(parts))
