"""Settle-all fan-out: run awaitables concurrently and keep every outcome."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Generic, Iterable, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one concurrently awaited item: a value or the error it raised."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(awaitables: Iterable[Awaitable[T]]) -> List[Outcome[T]]:
    """
    Await everything concurrently and return one Outcome per input, in input order.

    A failing item never cancels its siblings.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    outcomes: List[Outcome[T]] = []
    for result in results:
        if isinstance(result, BaseException):
            outcomes.append(Outcome(error=result))
        else:
            outcomes.append(Outcome(value=result))
    return outcomes
