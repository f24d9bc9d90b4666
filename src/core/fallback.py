"""Fallback ordenado con clasificación.

La cadena de credenciales, la lista de URLs candidatas y la secuencia de
realms tienen la misma forma: probar en orden, clasificar cada fallo, seguir.
`try_in_order` implementa ese bucle una sola vez; cada llamador aporta un
clasificador que decide qué es éxito y cómo se etiqueta cada fallo.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")
V = TypeVar("V")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict(Generic[V]):
    accepted: bool
    value: V | None = None
    kind: str | None = None
    detail: object = None

    @classmethod
    def accept(cls, value: V) -> "Verdict[V]":
        return cls(True, value=value)

    @classmethod
    def reject(cls, kind: str, detail: object = None) -> "Verdict[V]":
        return cls(False, kind=kind, detail=detail)


@dataclass(frozen=True)
class Failure(Generic[T]):
    item: T
    kind: str
    detail: object = None


@dataclass
class FallbackOutcome(Generic[T, V]):
    value: V | None = None
    item: T | None = None
    failures: list[Failure[T]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.item is not None

    def first(self, kind: str) -> Failure[T] | None:
        for failure in self.failures:
            if failure.kind == kind:
                return failure
        return None

    def count(self, kind: str) -> int:
        return sum(1 for failure in self.failures if failure.kind == kind)


def try_in_order(
    items: Iterable[T],
    attempt: Callable[[T], R],
    classify: Callable[[T, R | None, Exception | None], Verdict[V]],
    *,
    describe: Callable[[T], str] = str,
    log: logging.Logger | None = None,
    level: int = logging.WARNING,
) -> FallbackOutcome[T, V]:
    """Prueba `items` en orden hasta el primer veredicto aceptado.

    - `attempt` puede lanzar: la excepción se pasa a `classify` (nunca se pierde).
    - `classify` puede relanzar lo que no sepa clasificar.
    - Los intentos son estrictamente secuenciales; el primer éxito corta el bucle.
    """

    log = log or logger
    outcome: FallbackOutcome[T, V] = FallbackOutcome()
    for item in items:
        result: R | None = None
        error: Exception | None = None
        try:
            result = attempt(item)
        except Exception as exc:
            error = exc

        verdict = classify(item, result, error)
        if verdict.accepted:
            outcome.value = verdict.value
            outcome.item = item
            return outcome

        kind = verdict.kind or "rejected"
        outcome.failures.append(Failure(item=item, kind=kind, detail=verdict.detail))
        log.log(level, "%s -> %s%s", describe(item), kind, f" ({verdict.detail})" if verdict.detail else "")
    return outcome
