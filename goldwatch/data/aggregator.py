"""
Ordered fallback across price sources with request coalescing.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, Optional, Sequence

from goldwatch.database.models import PriceSnapshot
from goldwatch.exceptions import AggregateFailureError, SourceFetchError
from .cache import PriceCache
from .sources import PriceSource

logger = logging.getLogger(__name__)

ALL_SOURCES = "*"


class _Flight:
    """One fetch cycle that late callers wait on instead of repeating."""

    def __init__(self):
        self._done = threading.Event()
        self._snapshot: Optional[PriceSnapshot] = None
        self._error: Optional[BaseException] = None

    def finish(
        self,
        snapshot: Optional[PriceSnapshot] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._snapshot = snapshot
        self._error = error
        self._done.set()

    def wait(self) -> PriceSnapshot:
        self._done.wait()
        if self._error is not None:
            raise self._error
        return self._snapshot


class FallbackAggregator:
    """
    Tries sources in priority order until one yields a valid snapshot.

    Each source gets exactly one attempt per cycle, bounded by ``timeout``.
    Concurrent callers asking for the same source set share one cycle and
    all observe its snapshot or its AggregateFailureError.
    """

    def __init__(
        self,
        sources: Sequence[PriceSource],
        cache: PriceCache,
        clock: Callable[[], datetime],
        timeout: float = 15.0,
    ):
        """
        Args:
            sources: Sources in priority order
            cache: Per-source snapshot cache
            clock: Returns the current time; stamps new snapshots
            timeout: Seconds allowed for a single source attempt
        """
        if not sources:
            raise ValueError("At least one price source is required")
        self.sources = list(sources)
        self.cache = cache
        self.clock = clock
        self.timeout = timeout

        self._by_name = {s.name: s for s in self.sources}
        self._lock = threading.Lock()
        self._in_flight: dict[str, _Flight] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=len(self.sources) * 2,
            thread_name_prefix="price-source",
        )

    @property
    def source_names(self) -> list[str]:
        return [s.name for s in self.sources]

    def fetch(self, source: Optional[str] = None, refresh: bool = False) -> PriceSnapshot:
        """
        Get a snapshot, from cache or live.

        Args:
            source: Attempt only this source, bypassing the priority order
            refresh: Skip cached entries and force live fetches

        Returns:
            First valid snapshot in priority order

        Raises:
            ValueError: If ``source`` is not a configured source
            AggregateFailureError: If every attempted source failed
        """
        if source is not None and source not in self._by_name:
            raise ValueError(f"Unknown price source: {source}")

        key = source or ALL_SOURCES
        with self._lock:
            pending = self._in_flight.get(key)
            if pending is None:
                pending = _Flight()
                self._in_flight[key] = pending
                leader = True
            else:
                leader = False

        if not leader:
            logger.info(f"Joining in-flight price fetch for {key}")
            return pending.wait()

        try:
            targets = [self._by_name[source]] if source else self.sources
            snapshot = self._run_cycle(targets, refresh)
        except BaseException as e:
            pending.finish(error=e)
            raise
        else:
            pending.finish(snapshot=snapshot)
            return snapshot
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _run_cycle(self, targets: list[PriceSource], refresh: bool) -> PriceSnapshot:
        errors: dict[str, SourceFetchError] = {}

        for src in targets:
            if not refresh:
                cached = self.cache.get(src.name)
                if cached is not None:
                    logger.info(f"Using cached {src.name} price (< {self.cache.ttl} old)")
                    return cached

            try:
                snapshot = self._attempt(src)
            except SourceFetchError as e:
                logger.warning(f"Price source {src.name} failed: {e.reason}")
                errors[src.name] = e
                continue

            self.cache.put(src.name, snapshot)
            logger.info(
                f"Fetched gold price from {src.name}: "
                f"{snapshot.price_per_gram:.0f} {snapshot.currency}/{snapshot.unit}"
            )
            return snapshot

        logger.error(f"All price sources failed: {', '.join(errors)}")
        raise AggregateFailureError(errors)

    def _attempt(self, src: PriceSource) -> PriceSnapshot:
        """Run one source under the per-source timeout."""
        future = self._executor.submit(src.fetch, self.timeout, self.clock())
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            raise SourceFetchError(src.name, f"timeout after {self.timeout}s")
        except SourceFetchError:
            raise
        except Exception as e:
            raise SourceFetchError(src.name, f"unexpected error: {e}") from e

    def close(self) -> None:
        self._executor.shutdown(wait=False)
