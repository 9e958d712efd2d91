"""
Batch folding helpers.

Per-record loops are modelled as a fold that produces successes and
failures as a first-class value instead of silently swallowing errors.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag checked between batch records."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return True once cancellation was requested."""
        return self._event.is_set()


@dataclass(frozen=True)
class BatchFailure:
    """A record that failed inside a batch."""

    item: Any
    error: str
    error_code: Optional[str] = None


@dataclass
class BatchResult(Generic[R]):
    """Outcome of a batch fold."""

    successes: List[R] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    aborted: bool = False
    remaining: int = 0

    @property
    def succeeded(self) -> int:
        return len(self.successes)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def merge(self, other: "BatchResult[R]") -> "BatchResult[R]":
        """Return a new result combining both folds."""
        return BatchResult(
            successes=self.successes + other.successes,
            failures=self.failures + other.failures,
            aborted=self.aborted or other.aborted,
            remaining=self.remaining + other.remaining,
        )


async def fold_batch(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[R]],
    cancellation: Optional[CancellationToken] = None,
    describe: Callable[[T], Any] = lambda item: item,
) -> BatchResult[R]:
    """
    Apply an async operation to every item, collecting successes and failures.

    A failing item never aborts the batch. Cancellation is honoured between
    items only, so the result always reads as "N processed, M remain".

    Args:
        items: Items to process in order
        operation: Async callable applied to each item
        cancellation: Optional token checked before each item
        describe: Maps an item to the value recorded on failure

    Returns:
        BatchResult with successes, failures and abort information
    """
    pending = list(items)
    result: BatchResult[R] = BatchResult()

    for index, item in enumerate(pending):
        if cancellation is not None and cancellation.cancelled:
            result.aborted = True
            result.remaining = len(pending) - index
            logger.info(
                "Batch cancelled after %d record(s), %d remaining",
                index,
                result.remaining,
            )
            break
        try:
            result.successes.append(await operation(item))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Batch record %s failed: %s", describe(item), e, exc_info=True)
            result.failures.append(
                BatchFailure(
                    item=describe(item),
                    error=str(e),
                    error_code=getattr(e, "code", None),
                )
            )

    return result
