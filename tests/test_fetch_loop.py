"""Unit tests for the paginated fetch loop."""
import pytest

from conftest import build_station
from truckcng.export.stations_csv import StationCsvSink
from truckcng.ingest.anp import PageResult, RateLimitedError, UpstreamError
from truckcng.pipeline.fetch_loop import FetchLoop, StopReason
from truckcng.pipeline.progress import JsonProgressStore, ProgressState


def page_of(page, count=2, total_pages=3, **overrides):
    stations = [build_station(station_id=f"{page}-{i}", **overrides) for i in range(count)]
    return PageResult(page=page, stations=stations, total_pages=total_pages)


def empty(page):
    return PageResult(page=page)


class FakeSource:
    """Page source driven by a script of outcomes per page.

    Each call consumes the next outcome for the page; the last one repeats.
    Outcomes are PageResults or exceptions to raise.
    """

    def __init__(self, script):
        self.script = {page: list(outcomes) for page, outcomes in script.items()}
        self.calls = []

    def fetch_page(self, page):
        self.calls.append(page)
        outcomes = self.script.get(page) or [empty(page)]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingStore:
    def __init__(self, state=None):
        self.state = state
        self.saved = []

    def load(self):
        return self.state

    def save(self, state):
        self.saved.append(state)
        self.state = state

    def clear(self):
        self.state = None


class ExplodingLoadStore(RecordingStore):
    def load(self):
        raise AssertionError("checkpoint must not be read")


class SinkCheckingStore(RecordingStore):
    """Records how many rows the sink held when each checkpoint was saved."""

    def __init__(self, sink):
        super().__init__()
        self.sink = sink
        self.rows_at_save = []

    def save(self, state):
        self.rows_at_save.append(self.sink.count_rows())
        super().save(state)


class FailingSink(StationCsvSink):
    def append(self, stations):
        raise OSError("disk full")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_loop(sleeps):
    def _make(script, **kwargs):
        source = FakeSource(script)
        options = dict(
            trusted_tax_ids=[],
            page_delay=5.0,
            max_rate_limit_retries=5,
            backoff_base=1.0,
            sleep=sleeps.append,
        )
        options.update(kwargs)
        return FetchLoop(source, **options), source
    return _make


@pytest.fixture
def sink(tmp_path):
    return StationCsvSink(tmp_path / "stations.csv")


class TestStreaming:
    """Test page-by-page processing with checkpoints."""

    def test_from_scratch_to_declared_total(self, make_loop, sink, sleeps):
        loop, source = make_loop({1: [page_of(1)], 2: [page_of(2)], 3: [page_of(3)]})
        store = RecordingStore()

        summary = loop.run_streaming(sink, store)

        assert source.calls == [1, 2, 3]
        assert summary.stop_reason == StopReason.TOTAL_PAGES_REACHED
        assert summary.pages_processed == 3
        assert summary.stations_saved == 6
        assert sink.count_rows() == 6
        assert [s.last_page for s in store.saved] == [1, 2, 3]
        assert [s.saved_count for s in store.saved] == [2, 4, 6]
        assert sleeps == [5.0, 5.0]

    def test_resume_after_checkpoint(self, make_loop, sink):
        loop, source = make_loop({4: [page_of(4, total_pages=None)], 5: [empty(5)]})
        store = RecordingStore(ProgressState(last_page=3, saved_count=42))

        summary = loop.run_streaming(sink, store)

        assert source.calls == [4, 5]
        assert summary.start_page == 4
        assert summary.stations_saved == 44
        assert summary.stop_reason == StopReason.DONE
        assert store.state.last_page == 4
        assert store.state.saved_count == 44

    def test_empty_page_stops_without_checkpoint(self, make_loop, sink):
        loop, source = make_loop({1: [empty(1)]})
        store = RecordingStore()

        summary = loop.run_streaming(sink, store)

        assert summary.stop_reason == StopReason.DONE
        assert summary.pages_processed == 0
        assert store.saved == []
        assert not sink.path.exists()

    def test_page_with_no_matches_still_checkpointed(self, make_loop, sink):
        loop, _ = make_loop({1: [page_of(1, total_pages=1, status_code="500")]})
        store = RecordingStore()

        summary = loop.run_streaming(sink, store)

        assert summary.stations_saved == 0
        assert store.state.last_page == 1
        assert sink.count_rows() == 0

    def test_rate_limit_exhausted(self, make_loop, sink, sleeps):
        loop, source = make_loop({1: [page_of(1)], 2: [RateLimitedError(2)]})
        store = RecordingStore()

        summary = loop.run_streaming(sink, store)

        assert summary.stop_reason == StopReason.RATE_LIMITED
        assert summary.failed is True
        assert source.calls == [1, 2, 2, 2, 2, 2]
        assert sleeps == [5.0, 1.0, 2.0, 4.0, 8.0]
        assert store.state.last_page == 1
        assert sink.count_rows() == 2

    def test_retry_after_honoured(self, make_loop, sink, sleeps):
        loop, source = make_loop({
            1: [RateLimitedError(1, retry_after=7.0), page_of(1, total_pages=1)],
        })

        summary = loop.run_streaming(sink, RecordingStore())

        assert source.calls == [1, 1]
        assert sleeps == [7.0]
        assert summary.stop_reason == StopReason.TOTAL_PAGES_REACHED

    def test_recovers_after_rate_limit(self, make_loop, sink, sleeps):
        loop, _ = make_loop({
            1: [RateLimitedError(1), RateLimitedError(1), page_of(1, total_pages=1)],
        })

        summary = loop.run_streaming(sink, RecordingStore())

        assert sleeps == [1.0, 2.0]
        assert summary.stations_saved == 2

    def test_upstream_error_keeps_progress(self, make_loop, sink, sleeps):
        loop, source = make_loop({1: [page_of(1)], 2: [UpstreamError(2, 503, "Service Unavailable")]})
        store = RecordingStore()

        summary = loop.run_streaming(sink, store)

        assert summary.stop_reason == StopReason.UPSTREAM_ERROR
        assert source.calls == [1, 2]
        assert sleeps == [5.0]
        assert store.state.last_page == 1
        assert summary.stations_saved == 2

    def test_max_pages(self, make_loop, sink, sleeps):
        loop, source = make_loop({1: [page_of(1)], 2: [page_of(2)], 3: [page_of(3)]})

        summary = loop.run_streaming(sink, RecordingStore(), max_pages=2)

        assert source.calls == [1, 2]
        assert summary.stop_reason == StopReason.DONE
        assert sleeps == [5.0]

    def test_corrupt_json_checkpoint_starts_over(self, make_loop, sink, tmp_path):
        checkpoint = tmp_path / "progress.json"
        checkpoint.write_text("{broken", encoding="utf-8")
        loop, source = make_loop({1: [page_of(1, total_pages=1)]})

        summary = loop.run_streaming(sink, JsonProgressStore(checkpoint))

        assert source.calls == [1]
        assert summary.start_page == 1
        assert JsonProgressStore(checkpoint).load().last_page == 1

    def test_checkpoint_saved_after_rows_written(self, make_loop, sink):
        loop, _ = make_loop({1: [page_of(1)], 2: [page_of(2)], 3: [page_of(3, count=1)]})
        store = SinkCheckingStore(sink)

        loop.run_streaming(sink, store)

        assert store.rows_at_save == [2, 4, 5]
        assert [s.saved_count for s in store.saved] == [2, 4, 5]

    def test_failed_append_leaves_checkpoint_untouched(self, make_loop, tmp_path):
        loop, source = make_loop({1: [page_of(1)]})
        store = RecordingStore()

        with pytest.raises(OSError):
            loop.run_streaming(FailingSink(tmp_path / "stations.csv"), store)

        assert source.calls == [1]
        assert store.saved == []

    def test_zero_retries_is_not_replaced_by_default(self, make_loop, sink, sleeps):
        loop, source = make_loop({1: [RateLimitedError(1)]}, max_rate_limit_retries=0)

        summary = loop.run_streaming(sink, RecordingStore())

        assert summary.stop_reason == StopReason.RATE_LIMITED
        assert source.calls == [1]
        assert sleeps == []

    def test_trusted_station_scores_100(self, make_loop, sink):
        loop, _ = make_loop(
            {1: [page_of(1, count=1, total_pages=1, tax_id="01797812000172")]},
            trusted_tax_ids=["01797812000172"],
        )

        loop.run_streaming(sink, RecordingStore())

        text = sink.read_text()
        assert '"true"' in text
        assert '"100.0"' in text


class TestBatch:
    """Test fetch-everything-then-export runs."""

    def test_all_pages_sorted_by_score(self, make_loop, sink, sleeps):
        loop, _ = make_loop({
            1: [page_of(1, count=1, total_pages=2)],
            2: [page_of(2, count=1, total_pages=2, accuracy_estimate="0")],
        })

        summary = loop.run_batch(sink)

        assert summary.stop_reason == StopReason.TOTAL_PAGES_REACHED
        assert summary.stations_saved == 2
        assert sleeps == [5.0]
        lines = sink.read_text().splitlines()
        assert len(lines) == 3
        assert lines[1].endswith('"90.0"')
        assert lines[2].endswith('"80.0"')

    def test_no_data_writes_nothing(self, make_loop, sink):
        loop, _ = make_loop({1: [empty(1)]})

        summary = loop.run_batch(sink)

        assert summary.stations_saved == 0
        assert summary.stop_reason == StopReason.DONE
        assert not sink.path.exists()

    def test_unknown_total_runs_until_empty_page(self, make_loop, sink):
        loop, source = make_loop({
            1: [page_of(1, total_pages=None)],
            2: [page_of(2, total_pages=None)],
            3: [empty(3)],
        })

        summary = loop.run_batch(sink)

        assert source.calls == [1, 2, 3]
        assert summary.stop_reason == StopReason.DONE
        assert sink.count_rows() == 4

    def test_rate_limited_batch_writes_what_it_has(self, make_loop, sink):
        loop, _ = make_loop({1: [page_of(1)], 2: [RateLimitedError(2)]})

        summary = loop.run_batch(sink)

        assert summary.stop_reason == StopReason.RATE_LIMITED
        assert sink.count_rows() == 2


class TestSinglePage:
    """Test on-demand processing of one page."""

    def test_returns_accumulated_csv(self, make_loop, sink):
        loop, source = make_loop({7: [page_of(7, count=3)]})
        store = ExplodingLoadStore()

        sink.append([build_station(station_id="earlier")])
        summary = loop.fetch_single_page(7, sink, store)

        assert source.calls == [7]
        assert summary.stop_reason == StopReason.SINGLE_PAGE
        assert summary.stations_saved == 4
        assert store.state == ProgressState(
            last_page=7, saved_count=4, updated_at=store.state.updated_at
        )
        assert summary.csv_text == sink.read_text()
        assert len(summary.csv_text.splitlines()) == 5

    def test_empty_page(self, make_loop, sink):
        loop, _ = make_loop({})
        store = ExplodingLoadStore()

        summary = loop.fetch_single_page(9, sink, store)

        assert summary.pages_processed == 0
        assert summary.csv_text == ""
        assert store.saved == []

    def test_upstream_error(self, make_loop, sink):
        loop, _ = make_loop({2: [UpstreamError(2, None, "timeout")]})

        summary = loop.fetch_single_page(2, sink, ExplodingLoadStore())

        assert summary.stop_reason == StopReason.UPSTREAM_ERROR
        assert summary.failed is True
