"""Independent side effects of settling or refunding a line.

An effect that fails is logged with its context and reported back as a
failed EffectResult. It never cancels its siblings.
"""

from dataclasses import dataclass, field
from typing import Any

from settlement.domain import logger


@dataclass(frozen=True)
class EffectResult:
    name: str
    ok: bool
    value: Any = None
    error: str | None = None
    context: dict = field(default_factory=dict)

    def describe(self) -> dict:
        return {"effect": self.name, "error": self.error, **self.context}


def run_effect(name: str, fn, **context) -> EffectResult:
    try:
        value = fn()
    except Exception as exc:
        logger.error("effect_failed", effect=name, error=str(exc), exc_info=True, **context)
        return EffectResult(name=name, ok=False, error=str(exc), context=context)
    return EffectResult(name=name, ok=True, value=value, context=context)


def failures(results) -> list[dict]:
    return [r.describe() for r in results if not r.ok]
