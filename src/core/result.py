"""Two-variant Result type used by every fallible core operation.

Parsers and traversal helpers never raise for bad input; they return an
``Ok`` or an ``Err`` and the caller decides whether to skip, retry, or abort.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Optional, Tuple, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying an error value."""

    error: E
    ok: bool = field(default=False, init=False)


Result = Union[Ok[T], Err[E]]


def ok(value: T) -> Ok[T]:
    return Ok(value)


def err(error: E) -> Err[E]:
    return Err(error)


def is_ok(result: Result) -> bool:
    return result.ok


def is_err(result: Result) -> bool:
    return not result.ok


def map_ok(result: Result[T, E], fn: Callable[[T], U]) -> Result[U, E]:
    """Transform the success value, passing failures through untouched."""

    if isinstance(result, Ok):
        return Ok(fn(result.value))
    return result


def map_err(result: Result[T, E], fn: Callable[[E], F]) -> Result[T, F]:
    """Transform the error value, passing successes through untouched."""

    if isinstance(result, Err):
        return Err(fn(result.error))
    return result


def chain(result: Result[T, E], fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
    """Feed a success value into another fallible step."""

    if isinstance(result, Ok):
        return fn(result.value)
    return result


def unwrap_or(result: Result[T, E], default: T) -> T:
    if isinstance(result, Ok):
        return result.value
    return default


def fold(result: Result[T, E], on_ok: Callable[[T], U], on_err: Callable[[E], U]) -> U:
    """Collapse both branches into a single value."""

    if isinstance(result, Ok):
        return on_ok(result.value)
    return on_err(result.error)


def from_optional(value: Optional[T], error: E) -> Result[T, E]:
    """Wrap a possibly-missing value, using ``error`` when it is None."""

    if value is not None:
        return Ok(value)
    return Err(error)


def attempt(fn: Callable[[], T], on_error: Callable[[Exception], E]) -> Result[T, E]:
    """Run ``fn`` and convert any exception it raises into an ``Err``."""

    try:
        return Ok(fn())
    except Exception as exc:
        return Err(on_error(exc))


def combine(results: Iterable[Result[Any, E]]) -> Result[Tuple[Any, ...], E]:
    """Return all success values, or the first error encountered."""

    values = []
    for result in results:
        if isinstance(result, Err):
            return result
        values.append(result.value)
    return Ok(tuple(values))
