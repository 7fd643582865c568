"""Result type for best-effort operations.

Analytics must never block the conversion path, so dedup bookkeeping,
hashing and gateway emission report failures as values instead of raising.
Callers are free to ignore the returned outcome.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, value: T | None = None) -> "Outcome[T]":
        return cls(ok=False, value=value, error=error)

    def __bool__(self) -> bool:
        return self.ok
