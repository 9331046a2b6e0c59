"""
Success / failure results passed between the storage, service and HTTP layers.

Every public store and service operation returns one of these instead of raising:
- Success(result, source) when the operation went through
- Failure(error) carrying an AuthError subclass (see services.errors)

Callers branch on `.success`:

    outcome = service.rotate_token(...)
    if not outcome.success:
        log(outcome.error)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True)
class Success(Generic[T]):
    result: T
    source: Optional[str] = None
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure(Generic[E]):
    error: E
    success: bool = field(default=False, init=False)


Result = Union[Success[T], Failure[E]]


def success(result: T, source: Optional[str] = None) -> Success[T]:
    return Success(result, source)


def fail(error: E) -> Failure[E]:
    return Failure(error)
