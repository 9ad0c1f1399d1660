"""Paginated ANP fetch loop with rate-limit back-off and resumable progress.

Three ways to drive it:

- ``run_batch``: fetch every declared page into memory, then filter, score
  and write the CSV once. No checkpoint.
- ``run_streaming``: process one page at a time, appending to the CSV and
  saving a checkpoint after each page; restarts resume after the last
  completed page.
- ``fetch_single_page``: process one explicit page on demand and return the
  sink's contents. The checkpoint is written but never read.

Upstream trouble never raises out of these functions: the returned
``RunSummary`` says how far the run got and why it stopped.
"""
import logging
import time
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol

from pydantic import BaseModel
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from truckcng.config import settings
from truckcng.export.stations_csv import StationCsvSink
from truckcng.ingest.anp import PageResult, RateLimitedError, UpstreamError
from truckcng.ingest.models import StationRecord
from truckcng.pipeline.progress import ProgressState, ProgressStore
from truckcng.score.scorer import score_page

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    def fetch_page(self, page: int) -> PageResult:
        ...


class StopReason(str, Enum):
    DONE = "done"
    TOTAL_PAGES_REACHED = "total_pages_reached"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    SINGLE_PAGE = "single_page"


class RunSummary(BaseModel):
    """What a run achieved; returned instead of raising on upstream failures."""

    mode: str
    start_page: int
    pages_processed: int = 0
    stations_saved: int = 0
    last_page: int = 0
    stop_reason: StopReason = StopReason.DONE
    output_path: Optional[str] = None
    csv_text: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.stop_reason in (StopReason.RATE_LIMITED, StopReason.UPSTREAM_ERROR)


def wait_retry_after(fallback: Callable[[RetryCallState], float]) -> Callable[[RetryCallState], float]:
    """Wait strategy honouring the server's Retry-After, else ``fallback``."""

    def _wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            return exc.retry_after
        return fallback(retry_state)

    return _wait


def _log_rate_limited(retry_state: RetryCallState):
    exc = retry_state.outcome.exception()
    logger.warning(
        f"Rate-limited on page {getattr(exc, 'page', '?')}, waiting "
        f"{retry_state.next_action.sleep:.1f}s before retry ({retry_state.attempt_number})"
    )


class FetchLoop:
    """Drives a page source one page at a time, strictly in order."""

    def __init__(
        self,
        source: PageSource,
        trusted_tax_ids: Optional[Iterable[str]] = None,
        page_delay: Optional[float] = None,
        max_rate_limit_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        min_diesel_capacity: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.source = source
        self.trusted_tax_ids = frozenset(
            settings.trusted_tax_ids if trusted_tax_ids is None else trusted_tax_ids
        )
        self.page_delay = settings.page_delay_seconds if page_delay is None else page_delay
        self.max_rate_limit_retries = (
            settings.max_rate_limit_retries if max_rate_limit_retries is None else max_rate_limit_retries
        )
        self.backoff_base = settings.backoff_base_seconds if backoff_base is None else backoff_base
        self.min_diesel_capacity = (
            settings.diesel_min_capacity if min_diesel_capacity is None else min_diesel_capacity
        )
        self.sleep = sleep

    def fetch_with_backoff(self, page: int) -> PageResult:
        """
        Fetch a page, retrying the same page while ANP rate-limits us.

        Waits the advertised Retry-After when present, otherwise
        ``backoff_base * 2**retry``.

        Raises:
            RateLimitedError: After ``max_rate_limit_retries`` rate-limited responses
            UpstreamError: Immediately, on any other failure
        """
        retryer = Retrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(self.max_rate_limit_retries),
            wait=wait_retry_after(wait_exponential(multiplier=self.backoff_base)),
            sleep=self.sleep,
            before_sleep=_log_rate_limited,
            reraise=True,
        )
        return retryer(self.source.fetch_page, page)

    def _fetch(self, page: int, summary: RunSummary) -> Optional[PageResult]:
        """Fetch with back-off; on failure record the stop reason and return None."""
        try:
            return self.fetch_with_backoff(page)
        except RateLimitedError:
            logger.error(
                f"Giving up on page {page} after {self.max_rate_limit_retries} rate-limited responses"
            )
            summary.stop_reason = StopReason.RATE_LIMITED
        except UpstreamError as e:
            logger.error(f"Failed to fetch data from ANP API page {page}: {e}")
            summary.stop_reason = StopReason.UPSTREAM_ERROR
        return None

    def _score(self, stations: Iterable[StationRecord]) -> List[StationRecord]:
        return score_page(stations, self.trusted_tax_ids, self.min_diesel_capacity)

    def run_batch(self, sink: StationCsvSink) -> RunSummary:
        """
        Fetch all declared pages into memory, then score and export once.

        Without a declared page count the loop keeps going until an empty
        page. Nothing is written when no station was fetched at all.
        """
        summary = RunSummary(mode="batch", start_page=1)
        all_stations: List[StationRecord] = []
        page = 1
        total_pages: Optional[int] = None

        while total_pages is None or page <= total_pages:
            result = self._fetch(page, summary)
            if result is None:
                break
            if result.is_empty:
                summary.stop_reason = StopReason.DONE
                break

            all_stations.extend(result.stations)
            if result.total_pages:
                total_pages = result.total_pages
            summary.pages_processed += 1
            summary.last_page = page
            logger.info(
                f"Loaded page {page}/{total_pages or '?'} ({len(all_stations)} stations)"
            )

            if total_pages is not None and page >= total_pages:
                summary.stop_reason = StopReason.TOTAL_PAGES_REACHED
                break
            self.sleep(self.page_delay)
            page += 1

        if not all_stations:
            logger.error("No data returned from ANP API")
            return summary

        ranked = self._score(all_stations)
        summary.stations_saved = sink.write_all(ranked)
        summary.output_path = str(sink.path)
        logger.info(
            f"Batch run kept {summary.stations_saved} of {len(all_stations)} stations "
            f"from {summary.pages_processed} pages"
        )
        return summary

    def _persist_page(
        self,
        page: int,
        stations: List[StationRecord],
        sink: StationCsvSink,
        store: ProgressStore,
        saved_before: int
    ) -> int:
        # Data first, checkpoint second: the checkpoint must never run ahead of the file
        appended = sink.append(stations)
        saved = saved_before + appended
        store.save(ProgressState(last_page=page, saved_count=saved))
        return saved

    def run_streaming(
        self,
        sink: StationCsvSink,
        store: ProgressStore,
        max_pages: Optional[int] = None
    ) -> RunSummary:
        """
        Process and persist one page at a time, resuming from the checkpoint.

        Args:
            sink: CSV file rows are appended to
            store: Checkpoint store, read once at start and written after each page
            max_pages: Optional cap on pages fetched in this run

        Returns:
            RunSummary with cumulative ``stations_saved`` (including earlier runs)
        """
        checkpoint = store.load()
        if checkpoint:
            logger.info(
                f"Resuming after page {checkpoint.last_page} "
                f"({checkpoint.saved_count} stations already saved)"
            )
        start_page = checkpoint.next_page if checkpoint else 1

        summary = RunSummary(
            mode="streaming",
            start_page=start_page,
            stations_saved=checkpoint.saved_count if checkpoint else 0,
            last_page=checkpoint.last_page if checkpoint else 0,
            output_path=str(sink.path),
        )
        page = start_page

        while True:
            result = self._fetch(page, summary)
            if result is None:
                break
            if result.is_empty:
                logger.info(f"No data on page {page}, stopping")
                summary.stop_reason = StopReason.DONE
                break

            ranked = self._score(result.stations)
            summary.stations_saved = self._persist_page(
                page, ranked, sink, store, summary.stations_saved
            )
            summary.pages_processed += 1
            summary.last_page = page
            logger.info(
                f"Page {page}/{result.total_pages or '?'}: kept {len(ranked)} of "
                f"{len(result.stations)} stations (total saved: {summary.stations_saved})"
            )

            if result.total_pages and page >= result.total_pages:
                summary.stop_reason = StopReason.TOTAL_PAGES_REACHED
                break
            if max_pages is not None and summary.pages_processed >= max_pages:
                summary.stop_reason = StopReason.DONE
                break

            # Respect the ANP request rate limit between pages
            self.sleep(self.page_delay)
            page += 1

        return summary

    def fetch_single_page(
        self,
        page: int,
        sink: StationCsvSink,
        store: ProgressStore
    ) -> RunSummary:
        """
        Process one explicit page and return the sink's full contents.

        The checkpoint is not consulted; the saved count written to it is
        the number of rows in the sink after this page.
        """
        summary = RunSummary(
            mode="single_page",
            start_page=page,
            stop_reason=StopReason.SINGLE_PAGE,
            output_path=str(sink.path),
        )

        result = self._fetch(page, summary)
        if result is not None and not result.is_empty:
            ranked = self._score(result.stations)
            sink.append(ranked)
            summary.stations_saved = sink.count_rows()
            store.save(ProgressState(last_page=page, saved_count=summary.stations_saved))
            summary.pages_processed = 1
            summary.last_page = page
            logger.info(f"Page {page}: kept {len(ranked)} of {len(result.stations)} stations")
        elif result is not None:
            logger.info(f"No data on page {page}")

        summary.csv_text = sink.read_text()
        return summary
