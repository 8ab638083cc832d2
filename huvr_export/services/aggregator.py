"""
Bounded Aggregator

Fans snapshot assembly out over a fixed-size thread pool. Each root id is
handed to an assembler function which performs the root fetch and whatever
dependent fetches define that snapshot; the aggregator only owns admission
(concurrency ceiling), ordering, cancellation and failure collection.

Failure policy for ``gather_many`` is fail-together: a mandatory fetch
failure for one root does not stop its siblings, every root is given the
chance to finish, and only then is a single ``SnapshotGatherError`` raised
listing every failed root. Cancellation discards all partial results.
"""
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar
import logging
import threading

from huvr_export.services.huvr_client import (
    EntityFetchPort,
    GatherCancelledError,
    HuvrApiError,
    Record,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)

S = TypeVar("S")

DEFAULT_MAX_CONCURRENCY = 5


class SnapshotGatherError(Exception):
    """One or more roots failed a mandatory fetch."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = failures
        ids = ", ".join(root_id for root_id, _ in failures)
        super().__init__(f"Failed to gather {len(failures)} snapshot(s): {ids}")


class FetchContext:
    """
    The fetch port as seen by an assembler.

    Every call first checks the cancellation signal. Mandatory fetches
    propagate failures; optional ones return None and record the part name
    on the snapshot's ``unresolved`` list.
    """

    def __init__(self, port: EntityFetchPort, cancel_event: Optional[threading.Event] = None):
        self.port = port
        self.cancel_event = cancel_event

    def fetch_one(self, entity_type: str, entity_id: str) -> Record:
        raise_if_cancelled(self.cancel_event)
        return self.port.fetch_one(entity_type, entity_id)

    def fetch_all(
        self,
        entity_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        max_items: Optional[int] = None,
    ) -> List[Record]:
        raise_if_cancelled(self.cancel_event)
        return self.port.fetch_all(entity_type, filters, max_items=max_items, cancel_event=self.cancel_event)

    def fetch_optional_one(self, snapshot: Any, part: str, entity_type: str, entity_id: str) -> Optional[Record]:
        try:
            return self.fetch_one(entity_type, entity_id)
        except HuvrApiError as e:
            logger.warning(f"Optional {part} ({entity_type} {entity_id}) unavailable: {e}")
            snapshot.unresolved.append(part)
            return None

    def fetch_optional_all(
        self,
        snapshot: Any,
        part: str,
        entity_type: str,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Record]:
        try:
            return self.fetch_all(entity_type, filters)
        except HuvrApiError as e:
            logger.warning(f"Optional {part} ({entity_type} {dict(filters or {})}) unavailable: {e}")
            snapshot.unresolved.append(part)
            return []


Assembler = Callable[[FetchContext, str], S]


class BoundedAggregator:
    def __init__(self, port: EntityFetchPort, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.port = port
        self.max_concurrency = max_concurrency

    def gather_snapshot(
        self,
        root_id: str,
        assembler: Assembler,
        cancel_event: Optional[threading.Event] = None,
    ) -> S:
        """Assemble one snapshot in the calling thread."""
        raise_if_cancelled(cancel_event)
        return assembler(FetchContext(self.port, cancel_event), root_id)

    def gather_many(
        self,
        root_ids: Iterable[str],
        assembler: Assembler,
        max_concurrency: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[S]:
        """
        Assemble a snapshot per root id, at most ``max_concurrency`` at a time.

        The result preserves the order of ``root_ids``. Raises
        ``GatherCancelledError`` if the cancel event fires, otherwise
        ``SnapshotGatherError`` after all roots ran if any of them failed.
        """
        ids = [str(root_id) for root_id in root_ids]
        if not ids:
            return []
        limit = self.max_concurrency if max_concurrency is None else max_concurrency
        if limit < 1:
            raise ValueError("max_concurrency must be at least 1")

        results: List[Optional[S]] = [None] * len(ids)
        failures: List[Tuple[int, str, BaseException]] = []
        cancelled = False

        logger.info(f"Gathering {len(ids)} snapshot(s) with concurrency {limit}")
        with ThreadPoolExecutor(max_workers=min(limit, len(ids)), thread_name_prefix="huvr-gather") as executor:
            futures = {
                executor.submit(self.gather_snapshot, root_id, assembler, cancel_event): position
                for position, root_id in enumerate(ids)
            }
            for future in as_completed(futures):
                position = futures[future]
                if cancel_event is not None and cancel_event.is_set() and not cancelled:
                    cancelled = True
                    # roots that have not started yet never will
                    for pending in futures:
                        pending.cancel()
                try:
                    results[position] = future.result()
                except (GatherCancelledError, CancelledError):
                    cancelled = True
                except Exception as e:
                    logger.error(f"Snapshot for {ids[position]} failed: {e}")
                    failures.append((position, ids[position], e))

        if cancelled or (cancel_event is not None and cancel_event.is_set()):
            logger.info("Snapshot gathering cancelled; discarding partial results")
            raise GatherCancelledError("Snapshot gathering cancelled")
        if failures:
            failures.sort(key=lambda item: item[0])
            error = SnapshotGatherError([(root_id, exc) for _, root_id, exc in failures])
            raise error from failures[0][2]
        return results

    def gather_by_filter(
        self,
        root_entity_type: str,
        filters: Optional[Mapping[str, Any]],
        assembler: Assembler,
        max_root_count: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[S]:
        """Resolve ``filters`` to root ids through the fetch port, then ``gather_many``."""
        raise_if_cancelled(cancel_event)
        roots = self.port.fetch_all(root_entity_type, filters, max_items=max_root_count, cancel_event=cancel_event)
        if max_root_count is not None:
            roots = roots[:max_root_count]
        root_ids = [str(root["Id"]) for root in roots if root.get("Id") is not None]
        return self.gather_many(root_ids, assembler, max_concurrency, cancel_event)
