"""Per-run metadata cache for depscope.

Every remote lookup made during one analysis goes through a single
:class:`MetadataCache` so that a package is fetched at most once per run,
no matter how many pipelines ask for it.  Concurrent requests for the same
key are coalesced onto one in-flight task; later callers simply await the
shared result.

The cache has an explicit lifecycle.  It is created when a run starts,
passed to whoever needs it, and closed when the run ends; nothing is
shared across runs.

Typical usage::

    from depscope.core.data_store import MetadataCache

    async with MetadataCache() as cache:
        data = await cache.get_or_fetch(
            "registry", "requests", lambda: client.get_json(url)
        )
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple, TypeVar

from depscope.utils.logger import get_logger

logger = get_logger("data_store")

T = TypeVar("T")

CacheKey = Tuple[str, Hashable]

# Public API
__all__ = ["MetadataCache"]


class MetadataCache:
    """Coalescing key-value store of fetched metadata for one run.

    Entries are grouped by *namespace* (``"registry"``, ``"advisories"``
    ...) so that unrelated lookups for the same package never collide.

    Each entry is the :class:`asyncio.Task` performing the fetch.  Waiters
    await it through :func:`asyncio.shield`, so cancelling one waiter does
    not cancel the fetch the others are sharing.  A finished task keeps its
    outcome, value or exception, for the rest of the run.  A task that ends
    up cancelled is dropped, leaving no entry behind.

    Attributes:
        hits: Lookups served by an existing entry (finished or in flight).
        misses: Lookups that started a new fetch.

    Example::

        async with MetadataCache() as cache:
            first, second = await asyncio.gather(
                cache.get_or_fetch("registry", "flask", fetch_flask),
                cache.get_or_fetch("registry", "flask", fetch_flask),
            )
            # fetch_flask ran once; cache.hits == 1, cache.misses == 1
    """

    def __init__(self) -> None:
        self._tasks: Dict[CacheKey, "asyncio.Task[Any]"] = {}
        self._closed = False
        self.hits = 0
        self.misses = 0

    async def __aenter__(self) -> "MetadataCache":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_or_fetch(
        self,
        namespace: str,
        key: Hashable,
        fetch: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached outcome for ``(namespace, key)``, fetching once.

        Args:
            namespace: Kind of lookup, e.g. ``"registry"``.
            key: Identity within the namespace, usually a normalized name.
            fetch: Zero-argument callable returning an awaitable.  Only
                called on a miss.

        Returns:
            The value produced by ``fetch``.

        Raises:
            RuntimeError: The cache has been closed.
            Exception: Whatever ``fetch`` raised; the same exception is
                re-raised to every caller for the rest of the run.
        """
        if self._closed:
            raise RuntimeError("MetadataCache is closed")

        cache_key: CacheKey = (namespace, key)
        task = self._tasks.get(cache_key)

        if task is None:
            self.misses += 1
            task = asyncio.ensure_future(fetch())
            self._tasks[cache_key] = task
            task.add_done_callback(partial(self._drop_if_cancelled, cache_key))
        else:
            self.hits += 1
            logger.debug(
                "Cache %s for %s:%s",
                "hit" if task.done() else "join",
                namespace,
                key,
            )

        return await asyncio.shield(task)

    def get_cached(
        self,
        namespace: str,
        key: Hashable,
        default: Optional[Any] = None,
    ) -> Any:
        """Return a finished, successful value without triggering a fetch.

        In-flight and failed entries yield ``default``.
        """
        task = self._tasks.get((namespace, key))
        if task is None or not task.done() or task.cancelled():
            return default
        if task.exception() is not None:
            return default
        return task.result()

    def __contains__(self, item: object) -> bool:
        """``(namespace, key) in cache`` is true once an outcome is cached."""
        task = self._tasks.get(item)  # type: ignore[arg-type]
        return task is not None and task.done() and not task.cancelled()

    def __len__(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Cancel fetches still in flight and forget every entry."""
        self._closed = True
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelling %d pending fetch(es)", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    def _drop_if_cancelled(self, cache_key: CacheKey, task: "asyncio.Task[Any]") -> None:
        if task.cancelled() and self._tasks.get(cache_key) is task:
            del self._tasks[cache_key]
