"""Ordered, bounded-concurrency map over a thread pool, inspired by `p-map`.

- ``concurrency`` caps how many mapper calls run at once.
- Output preserves input order.
- ``cancel_event``: once set, no further items are submitted. Calls already
  running finish and their results are kept; items never started are simply
  absent from the output.
- The first mapper error is re-raised and pending calls are cancelled.
  Callers that need per-item isolation catch inside the mapper.

``concurrency=1`` runs inline on the calling thread (no pool).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def _cancelled(event: threading.Event | None) -> bool:
    return event is not None and event.is_set()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    cancel_event: threading.Event | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    results: dict[int, OutT] = {}

    if concurrency == 1:
        for idx, item in enumerate(iterable):
            if _cancelled(cancel_event):
                break
            results[idx] = mapper(item)
    else:
        _run_pooled(iterable, mapper, concurrency, cancel_event, results)

    return [v for _, v in sorted(results.items())]


def _run_pooled(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    concurrency: int,
    cancel_event: threading.Event | None,
    results: dict[int, OutT],
) -> None:
    it = enumerate(iterable)
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        if _cancelled(cancel_event):
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise

            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)


__all__ = ["p_map"]
