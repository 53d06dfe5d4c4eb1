# Overview: Best-effort side effects that run after the main transaction commits.

"""
Post-commit hooks

Derived caches (e.g. a hose's last reading) are refreshed after the
financial transaction has committed. A failing hook is logged on its own
logger and swallowed: it never changes the result of the operation that
scheduled it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..extensions import db

logger = logging.getLogger("fuelpos.post_commit")


@dataclass
class HookFailure:
    name: str
    error: Exception


class PostCommitHooks:
    def __init__(self):
        self._hooks: list[tuple[str, Callable[[], None]]] = []

    def add(self, name: str, func: Callable[[], None]) -> None:
        self._hooks.append((name, func))

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self) -> list[HookFailure]:
        """Run every hook in its own transaction; return failures (already logged)."""
        failures = []
        for name, func in self._hooks:
            try:
                func()
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                logger.exception("Post-commit hook %s failed", name)
                failures.append(HookFailure(name=name, error=exc))
        self._hooks.clear()
        return failures
