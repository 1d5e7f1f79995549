from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Generic, Iterable, List, TypeVar

from .constants import LOG_CONTEXT_KEY
from .errors import ExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrentExecutor(Generic[T]):
    """
    Bounded fan-out over a finite list of items.

    Every item is processed exactly once, at most `concurrency` at a time. A failing item
    never cancels or blocks its siblings: all items run to completion, then every failure
    is raised together as a single ExecutionError.
    """

    def __init__(self, concurrency: int, name: str = "tuner"):
        if concurrency < 1:
            raise ValueError(f"concurrency must be a positive integer, got {concurrency}")
        self.concurrency = concurrency
        self.name = name

    def run(self, items: Iterable[T], fn: Callable[[T], object]) -> None:
        items = list(items)
        if not items:
            return

        workers = min(self.concurrency, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"{self.name}-worker") as pool:
            futures = [pool.submit(fn, item) for item in items]
            wait(futures)

        errors: List[BaseException] = []
        for future in futures:
            err = future.exception()
            if err is not None:
                errors.append(err)

        logger.debug(
            "fan_out_complete",
            extra={LOG_CONTEXT_KEY: {"stage": self.name, "items": len(items), "failed": len(errors)}},
        )

        joined = ExecutionError.join(errors)
        if joined is not None:
            raise joined


def process_in_parallel(items: Iterable[T], fn: Callable[[T], object], concurrency: int, name: str = "tuner") -> None:
    ConcurrentExecutor(concurrency, name).run(items, fn)
