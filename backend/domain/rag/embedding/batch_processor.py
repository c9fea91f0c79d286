"""
Batch processing utilities for embedding and reranking work
"""

import logging
import asyncio
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar
from tqdm.asyncio import tqdm

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchProcessor:
    """Batch processing with concurrency control and optional progress tracking"""

    def __init__(self, batch_size: int = 10, max_concurrent: int = 5):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent

    def split(self, items: Sequence[T]) -> List[List[T]]:
        """Split items into consecutive batches of batch_size"""
        return [list(items[i:i + self.batch_size]) for i in range(0, len(items), self.batch_size)]

    async def process_batch(
        self,
        items: Sequence[Any],
        process_fn: Callable[[Any], Awaitable[Any]],
        show_progress: bool = False
    ) -> List[Any]:
        """
        Process items concurrently, at most max_concurrent at a time.

        Args:
            items: List of items to process
            process_fn: Async function to process each item
            show_progress: Whether to show progress bar

        Returns:
            List of results. Input order is kept unless show_progress is set,
            in which case results arrive in completion order.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def process_with_semaphore(item):
            async with semaphore:
                return await process_fn(item)

        tasks = [process_with_semaphore(item) for item in items]

        if show_progress:
            results = []
            for coro in tqdm.as_completed(tasks, total=len(tasks)):
                result = await coro
                results.append(result)
            return results

        return list(await asyncio.gather(*tasks))

    async def process_in_batches(
        self,
        items: Sequence[Any],
        process_batch_fn: Callable[[List[Any]], Awaitable[List[Any]]],
        show_progress: bool = False
    ) -> List[Any]:
        """
        Process items sequentially in fixed-size batches.

        Args:
            items: List of items to process
            process_batch_fn: Async function to process a batch
            show_progress: Whether to log progress per batch

        Returns:
            Flattened results in input order
        """
        all_results = []
        batches = self.split(items)

        for number, batch in enumerate(batches, start=1):
            batch_results = await process_batch_fn(batch)
            all_results.extend(batch_results)

            if show_progress:
                logger.info(f"Processed batch {number}/{len(batches)}")

        return all_results
