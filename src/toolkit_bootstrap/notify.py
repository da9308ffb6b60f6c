"""
toolkit_bootstrap.notify — Side channel for user-facing messages.

Components never print. They receive a Notifier and report through it;
the default implementation forwards to the powertools Logger. A Notifier
must never raise into the caller: a failing sink cannot abort a bootstrap.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from aws_lambda_powertools import Logger

logger = Logger(service="toolkit-bootstrap")


class Notifier(Protocol):
    def debug(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...


class LoggerNotifier:
    """Notifier backed by a powertools Logger."""

    def __init__(self, log: Logger | None = None) -> None:
        self._log = log or logger

    def debug(self, message: str) -> None:
        self._emit(self._log.debug, message)

    def info(self, message: str) -> None:
        self._emit(self._log.info, message)

    def warn(self, message: str) -> None:
        self._emit(self._log.warning, message)

    def _emit(self, sink: Callable[..., Any], message: str) -> None:
        try:
            sink(message)
        except Exception:
            logger.exception("Failed to emit toolkit message", extra={"toolkit_message": message})
