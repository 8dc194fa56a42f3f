"""Base class for all cluster collectors."""

from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Sequence, Tuple, TypeVar, Union
import logging

from proximox.api_client import ProximoxAPIClient
from proximox.errors import ProximoxError, RequestCancelled

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

Outcome = Union[R, ProximoxError]

# seconds between cancellation checks while node calls are in flight
CANCEL_POLL_INTERVAL = 0.05


class BaseCollector(ABC):
    """Base class for collectors that fan out over cluster nodes."""

    def __init__(self, api_client: ProximoxAPIClient):
        """Initialize collector.

        Args:
            api_client: ProximoxAPIClient instance
        """
        self.api = api_client
        self.max_workers = api_client.server.max_workers

    @abstractmethod
    def collect(self) -> Any:
        """Collect data from the API.

        Must be implemented by subclasses.
        """
        pass

    def gather(self, func: Callable[[T], R], items: Sequence[T]) -> List[Tuple[T, Outcome]]:
        """Run ``func`` over ``items`` concurrently and pair each item with its outcome.

        A ProximoxError raised for one item is returned in place of its result
        so the other items still complete. Cancelling the operation aborts the
        batch at once: queued items never start and requests already sent are
        left to finish in the background.

        Returns:
            (item, result or error) tuples in the order of ``items``

        Raises:
            RequestCancelled: the operation was cancelled
        """
        if not items:
            return []

        workers = max(1, min(self.max_workers, len(items)))
        pool = ThreadPoolExecutor(max_workers=workers)
        futures = [pool.submit(func, item) for item in items]

        try:
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    error = future.exception()
                    if isinstance(error, RequestCancelled):
                        raise error
                if self.api.cancelled:
                    raise RequestCancelled("Operation cancelled")
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        outcomes: List[Tuple[T, Outcome]] = []
        for item, future in zip(items, futures):
            try:
                outcomes.append((item, future.result()))
            except ProximoxError as e:
                outcomes.append((item, e))

        return outcomes
