"""Uniform per-item failure isolation for batch work."""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success value or captured error for a single batch item."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__


async def run_isolated(
    func: Callable[..., T | Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> Outcome[T]:
    """Run one item's work and capture any failure as an Outcome.

    Works for plain and coroutine functions alike. Cancellation is not
    captured: it must still unwind the surrounding task.
    """
    try:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return Outcome(value=result)
    except Exception as e:
        return Outcome(error=e)


def chunked(items: list[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most `size` elements."""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]
