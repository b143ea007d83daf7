# Overview: Best-effort secondary accounting (income, commission, sale records) around a primary write.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app

from ..extensions import db


@dataclass(frozen=True)
class SideEffectFailure:
    effect: str
    error: str

    def to_dict(self) -> dict:
        return {"effect": self.effect, "error": self.error}


@dataclass
class OperationResult:
    """
    Primary outcome of a service operation plus the side effects that failed.

    The primary record is committed even when degraded is non-empty; callers
    surface the failures as warnings instead of errors.
    """
    value: Any
    degraded: list[SideEffectFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.degraded

    def warnings(self) -> list[dict]:
        return [failure.to_dict() for failure in self.degraded]


def run_side_effect(result: OperationResult, effect: str, func: Callable[[], Any]) -> Any:
    """
    Run func inside a SAVEPOINT.

    On failure only the savepoint is rolled back: the primary write stays in
    the outer transaction, the error is logged and recorded on result.degraded.
    """
    nested = db.session.begin_nested()
    try:
        value = func()
        nested.commit()
        return value
    except Exception as exc:
        nested.rollback()
        current_app.logger.exception("Side effect %s failed", effect)
        result.degraded.append(SideEffectFailure(effect=effect, error=str(exc)))
        return None
