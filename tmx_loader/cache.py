"""
Read-through cache of load tasks, keyed by resolved path.

=============================================================================
WHY A CACHE OF TASKS
=============================================================================

A tileset shared by five layers, or a template placed fifty times, must be
fetched and parsed once. The cache stores the *task* for a path, not the
result, so a second request that arrives while the first fetch is still in
flight awaits the same task instead of starting another one:

    cache.get_or_add('tiles/terrain.tsx')   -> starts the fetch
    cache.get_or_add('tiles/terrain.tsx')   -> same task, no new fetch

get_or_add() never awaits between the lookup and the insert, so on one
event loop it is atomic.

=============================================================================
SETTLING
=============================================================================

load() waits for every task, including tasks added by other tasks while
it waits, and never stops at the first failure. Every failure is logged
and reported together in one DependencyLoadFailure.

=============================================================================
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from .errors import DependencyLoadFailure, ResourceNotLoaded
from .log import get_logger

logger = get_logger('cache')

T = TypeVar('T')


class EntryState(enum.Enum):
    PENDING = 'pending'
    LOADED = 'loaded'
    FAILED = 'failed'


@dataclass
class CacheEntry(Generic[T]):
    path: str
    task: 'asyncio.Task[T]'

    @property
    def state(self) -> EntryState:
        if not self.task.done():
            return EntryState.PENDING
        if self.task.cancelled() or self.task.exception() is not None:
            return EntryState.FAILED
        return EntryState.LOADED

    @property
    def error(self) -> Optional[BaseException]:
        if self.task.done() and not self.task.cancelled():
            return self.task.exception()
        return None


class LoaderCache(Generic[T]):
    """
    Deduplicating cache of async loads.

    Parameters:
    -----------
    name : str
        Used in log messages ('tilesets', 'templates', 'images')
    factory : callable
        async factory(path) -> T, called at most once per path
    """

    def __init__(self, name: str, factory: Callable[[str], Awaitable[T]]):
        self.name = name
        self._factory = factory
        self._entries: Dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def get_or_add(self, path: str) -> 'asyncio.Task[T]':
        """Return the task for path, starting it if this is the first request."""
        entry = self._entries.get(path)
        if entry is None:
            logger.debug(f"[{self.name}] scheduling {path}")
            task = asyncio.ensure_future(self._factory(path))
            entry = CacheEntry(path, task)
            self._entries[path] = entry
        return entry.task

    async def get(self, path: str) -> T:
        return await self.get_or_add(path)

    def entries(self) -> List[CacheEntry[T]]:
        return list(self._entries.values())

    def pending(self) -> List['asyncio.Task[T]']:
        return [e.task for e in self._entries.values() if not e.task.done()]

    def result(self, path: str) -> T:
        """Result of a finished load, ResourceNotLoaded otherwise."""
        entry = self._entries.get(path)
        if entry is None or entry.state is not EntryState.LOADED:
            raise ResourceNotLoaded(f"[{self.name}] {path} has not been loaded")
        return entry.task.result()

    def values(self) -> List[T]:
        """Every loaded value; ResourceNotLoaded while anything is pending or failed."""
        results = []
        for entry in self._entries.values():
            if entry.state is not EntryState.LOADED:
                raise ResourceNotLoaded(
                    f"[{self.name}] read-through cache not yet loaded, "
                    f"{entry.path} is {entry.state.value}"
                )
            results.append(entry.task.result())
        return results

    def items(self) -> List[Tuple[str, T]]:
        """(path, value) for every successfully loaded entry."""
        return [(e.path, e.task.result()) for e in self._entries.values()
                if e.state is EntryState.LOADED]

    def failures(self) -> List[Tuple[str, str]]:
        failed = []
        for entry in self._entries.values():
            if entry.state is EntryState.FAILED:
                error = entry.error
                reason = f"{type(error).__name__}: {error}" if error else 'cancelled'
                failed.append((entry.path, reason))
        return failed

    async def load(self):
        """Settle every task of this cache, then raise if any failed."""
        await settle([self])


async def settle(caches: Iterable[LoaderCache]):
    """
    Wait until every task in every cache has finished.

    Tasks may add entries to any of the caches while running, so this
    loops until a pass finds nothing pending. Failures from all caches are
    collected into a single DependencyLoadFailure.
    """
    caches = list(caches)
    while True:
        pending = [task for cache in caches for task in cache.pending()]
        if not pending:
            break
        await asyncio.gather(*pending, return_exceptions=True)

    failures = []
    for cache in caches:
        for path, reason in cache.failures():
            logger.error(
                f"Error loading resource at {path} ({cache.name}), is your "
                f"path map correct or your Tiled map corrupted? {reason}"
            )
            failures.append((path, reason))

    if failures:
        raise DependencyLoadFailure(failures)
