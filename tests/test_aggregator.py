import threading
import time

import pytest

from huvr_export.services.aggregator import (
    DEFAULT_MAX_CONCURRENCY,
    BoundedAggregator,
    FetchContext,
    SnapshotGatherError,
)
from huvr_export.services.data_gatherer import ProjectSnapshot
from huvr_export.services.huvr_client import GatherCancelledError, HuvrApiError, HuvrNotFoundError
from tests.conftest import FakeFetchPort


class InFlightCounter:
    """Tracks the peak number of assemblers running at once."""

    def __init__(self):
        self.current = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __enter__(self):
        with self._lock:
            self.current += 1
            self.peak = max(self.peak, self.current)

    def __exit__(self, *exc_info):
        with self._lock:
            self.current -= 1


def fetching_assembler(ctx, project_id):
    return ctx.fetch_one("Project", project_id)


class TestGatherMany:
    def test_empty_input(self, port):
        assert BoundedAggregator(port).gather_many([], fetching_assembler) == []

    def test_results_follow_input_order(self, port):
        delays = {"P1": 0.05, "P2": 0.0, "P3": 0.02}

        def assemble(ctx, project_id):
            time.sleep(delays[project_id])
            return ctx.fetch_one("Project", project_id)

        results = BoundedAggregator(port, max_concurrency=3).gather_many(["P1", "P2", "P3"], assemble)
        assert [r["Id"] for r in results] == ["P1", "P2", "P3"]

    def test_concurrency_never_exceeds_ceiling(self, port):
        counter = InFlightCounter()

        def assemble(ctx, root_id):
            with counter:
                time.sleep(0.02)
            return root_id

        ids = [f"R{i}" for i in range(12)]
        results = BoundedAggregator(port, max_concurrency=3).gather_many(ids, assemble)
        assert results == ids
        assert 1 <= counter.peak <= 3

    def test_per_call_ceiling_overrides_default(self, port):
        counter = InFlightCounter()

        def assemble(ctx, root_id):
            with counter:
                time.sleep(0.01)
            return root_id

        BoundedAggregator(port).gather_many([str(i) for i in range(6)], assemble, max_concurrency=1)
        assert counter.peak == 1

    def test_default_ceiling(self, port):
        assert BoundedAggregator(port).max_concurrency == DEFAULT_MAX_CONCURRENCY == 5

    @pytest.mark.parametrize("limit", [0, -1])
    def test_invalid_ceiling(self, port, limit):
        with pytest.raises(ValueError):
            BoundedAggregator(port, max_concurrency=limit)

    @pytest.mark.parametrize("limit", [0, -2])
    def test_invalid_per_call_ceiling_is_rejected(self, port, limit):
        with pytest.raises(ValueError):
            BoundedAggregator(port).gather_many(["P1", "P2"], fetching_assembler, max_concurrency=limit)
        assert port.fetch_one_calls["Project"] == 0

    def test_failures_are_collected_after_siblings_finish(self, data):
        port = FakeFetchPort(data, failing_ids={"P2"})
        finished = []

        def assemble(ctx, project_id):
            record = ctx.fetch_one("Project", project_id)
            finished.append(project_id)
            return record

        with pytest.raises(SnapshotGatherError) as exc_info:
            BoundedAggregator(port, max_concurrency=2).gather_many(["P1", "P2", "P3"], assemble)

        assert sorted(finished) == ["P1", "P3"]
        failures = exc_info.value.failures
        assert [root_id for root_id, _ in failures] == ["P2"]
        assert isinstance(failures[0][1], HuvrApiError)
        assert isinstance(exc_info.value.__cause__, HuvrApiError)

    def test_every_failure_is_listed_in_input_order(self, data):
        port = FakeFetchPort(data)
        with pytest.raises(SnapshotGatherError) as exc_info:
            BoundedAggregator(port).gather_many(["X2", "P1", "X1"], fetching_assembler)
        assert [root_id for root_id, _ in exc_info.value.failures] == ["X2", "X1"]
        assert all(isinstance(e, HuvrNotFoundError) for _, e in exc_info.value.failures)

    def test_cancellation_discards_results(self, data):
        cancel = threading.Event()
        port = FakeFetchPort(data)
        started = []

        def assemble(ctx, root_id):
            started.append(root_id)
            if root_id == "P1":
                cancel.set()
            time.sleep(0.01)
            return ctx.fetch_one("Project", root_id)

        with pytest.raises(GatherCancelledError):
            BoundedAggregator(port, max_concurrency=1).gather_many(
                ["P1", "P2", "P3"], assemble, cancel_event=cancel
            )
        # the signal is seen at the first fetch boundary after it fires
        assert port.fetch_one_calls["Project"] == 0
        assert "P3" not in started

    def test_cancelled_before_start(self, port):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(GatherCancelledError):
            BoundedAggregator(port).gather_many(["P1", "P2"], fetching_assembler, cancel_event=cancel)
        assert port.fetch_one_calls["Project"] == 0


class TestGatherSnapshot:
    def test_runs_assembler_once(self, port):
        record = BoundedAggregator(port).gather_snapshot("P1", fetching_assembler)
        assert record["Name"] == "Q1 Inspection"
        assert port.fetch_one_calls["Project"] == 1

    def test_mandatory_failure_propagates(self, port):
        with pytest.raises(HuvrNotFoundError):
            BoundedAggregator(port).gather_snapshot("missing", fetching_assembler)


class TestGatherByFilter:
    def test_resolves_roots_then_gathers(self, port):
        results = BoundedAggregator(port).gather_by_filter("Project", {"status": "Open"}, fetching_assembler)
        assert [r["Id"] for r in results] == ["P1", "P3"]
        assert port.fetch_all_calls["Project"] == 1

    def test_max_root_count(self, port):
        results = BoundedAggregator(port).gather_by_filter("Project", None, fetching_assembler, max_root_count=2)
        assert [r["Id"] for r in results] == ["P1", "P2"]


class TestFetchContext:
    def test_optional_one_records_unresolved_part(self, port):
        snapshot = ProjectSnapshot(project={"Id": "P2"})
        ctx = FetchContext(port)
        assert ctx.fetch_optional_one(snapshot, "asset", "Asset", "A9") is None
        assert snapshot.unresolved == ["asset"]

    def test_optional_all_returns_empty_list_on_failure(self, data):
        class BrokenPort(FakeFetchPort):
            def fetch_all(self, *args, **kwargs):
                raise HuvrApiError("unavailable", status_code=503)

        snapshot = ProjectSnapshot(project={"Id": "P1"})
        ctx = FetchContext(BrokenPort(data))
        assert ctx.fetch_optional_all(snapshot, "defects", "Defect", {"project_id": "P1"}) == []
        assert snapshot.unresolved == ["defects"]

    def test_cancelled_context_refuses_to_fetch(self, port):
        cancel = threading.Event()
        cancel.set()
        ctx = FetchContext(port, cancel)
        with pytest.raises(GatherCancelledError):
            ctx.fetch_all("Project")
        assert port.fetch_all_calls["Project"] == 0
