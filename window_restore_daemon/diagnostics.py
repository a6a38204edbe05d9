"""Verbose diagnostic channel and app-name masking for logs."""

import logging
from typing import Dict, Optional

from .constants import VERBOSE_LOGGER_NAME


class AppNameMasker:
    """Replaces application names with stable placeholders (App1, App2, ...).

    The mapping lives for the process lifetime only and is never persisted.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._aliases: Dict[str, str] = {}

    def mask(self, name: Optional[str]) -> str:
        if name is None:
            return "<unknown>"
        if not self.enabled:
            return name
        alias = self._aliases.get(name)
        if alias is None:
            alias = f"App{len(self._aliases) + 1}"
            self._aliases[name] = alias
        return alias

    def reset(self) -> None:
        self._aliases.clear()


class VerboseLog:
    """Diagnostic trace that only emits when verbose logging is enabled.

    Matching candidate sets, distances and per-window targets go here, not to
    the regular error channel.
    """

    def __init__(self, enabled: bool = False, logger: Optional[logging.Logger] = None):
        self.enabled = enabled
        self._logger = logger or logging.getLogger(VERBOSE_LOGGER_NAME)

    def __call__(self, message: str) -> None:
        if self.enabled:
            self._logger.info(message)
