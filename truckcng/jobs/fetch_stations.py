"""Fetch ANP stations and export truck CNG candidates to CSV."""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from truckcng.config import settings
from truckcng.export.stations_csv import StationCsvSink
from truckcng.ingest.anp import AnpClient
from truckcng.pipeline.fetch_loop import FetchLoop, RunSummary
from truckcng.pipeline.progress import get_progress_store
from truckcng.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find truck-suitable CNG stations in the ANP reseller API")
    parser.add_argument(
        "--mode",
        choices=["batch", "stream"],
        default="stream",
        help="batch: fetch everything then export once; stream: append and checkpoint per page (default)"
    )
    parser.add_argument(
        "--page",
        type=int,
        help="Process only this page and print the accumulated CSV to stdout"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output CSV path (defaults to the configured out dir)"
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        help="Stop streaming after this many pages in this run"
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete the checkpoint and the streaming CSV before starting"
    )
    parser.add_argument(
        "--checkpoint-backend",
        choices=["json", "duckdb"],
        help="Checkpoint store (overrides config)"
    )
    parser.add_argument(
        "--page-delay",
        type=float,
        help=f"Seconds to wait between pages (default: {settings.page_delay_seconds})"
    )
    return parser


def log_summary(summary: RunSummary, duration: float):
    logger.info(
        f"{summary.mode} run stopped ({summary.stop_reason.value}): "
        f"{summary.pages_processed} pages processed, last page {summary.last_page}, "
        f"{summary.stations_saved} stations saved in {duration:.2f} seconds",
        extra={"duration": duration}
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the fetch job."""
    setup_job_logging("fetch_stations")
    args = build_parser().parse_args(argv)
    start_time = datetime.now()

    try:
        loop = FetchLoop(AnpClient(), page_delay=args.page_delay)

        if args.mode == "batch" and args.page is None:
            sink = StationCsvSink(Path(args.output) if args.output else settings.batch_csv_path)
            summary = loop.run_batch(sink)
        else:
            sink = StationCsvSink(Path(args.output) if args.output else settings.stream_csv_path)
            store = get_progress_store(args.checkpoint_backend)

            if args.reset:
                store.clear()
                if sink.path.exists():
                    sink.path.unlink()
                    logger.info(f"Removed {sink.path}")

            if args.page is not None:
                summary = loop.fetch_single_page(args.page, sink, store)
                sys.stdout.write(summary.csv_text or "")
            else:
                summary = loop.run_streaming(sink, store, max_pages=args.max_pages)

    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; completed pages are checkpointed")
        return 130

    log_summary(summary, (datetime.now() - start_time).total_seconds())
    return 1 if summary.failed and summary.pages_processed == 0 else 0


if __name__ == "__main__":
    sys.exit(main())
