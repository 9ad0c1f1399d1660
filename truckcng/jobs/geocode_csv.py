"""Geocode the addresses of an uploaded CSV/XLSX file."""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from truckcng.config import settings
from truckcng.utils.addresses import build_full_address
from truckcng.utils.fuzzy import map_headers
from truckcng.utils.geocode import GeocodeCache, GeocoderChain, build_providers
from truckcng.utils.io import read_data_file
from truckcng.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["latitude", "longitude", "geocode_confidence", "geocode_provider"]


def resolve_address_columns(headers: List[str]) -> Dict[str, Optional[str]]:
    """
    Find the address columns of an uploaded file.

    Raises:
        ValueError: If neither a full-address nor a street column is present
    """
    header_map = map_headers([str(h) for h in headers])
    logger.info(f"Header mapping: {header_map}")
    if not header_map.get("address") and not header_map.get("street"):
        raise ValueError(f"No address or street column found in headers: {list(headers)}")
    return header_map


def row_address(row: pd.Series, header_map: Dict[str, Optional[str]]) -> str:
    """Single-line address for one row, preferring a full-address column."""
    def col(name: str) -> Optional[str]:
        header = header_map.get(name)
        return row.get(header) if header else None

    full = col("address")
    if full and str(full).strip():
        return str(full).strip()

    return build_full_address(
        col("street"),
        col("number"),
        col("city"),
        col("state"),
        col("zip_code"),
        col("country") or "Brazil"
    )


def geocode_frame(
    df: pd.DataFrame,
    chain: GeocoderChain,
    limit: Optional[int] = None,
    show_progress: bool = True
) -> pd.DataFrame:
    """
    Add latitude, longitude, confidence and provider columns to ``df``.

    Rows past ``limit`` and rows without a usable address are left blank
    (confidence "skipped" / "empty").
    """
    header_map = resolve_address_columns(list(df.columns))
    result = df.copy()
    values = {c: [""] * len(result) for c in RESULT_COLUMNS}

    rows = result.iterrows()
    if show_progress:
        rows = tqdm(rows, total=len(result), desc="Geocoding")

    for position, (_, row) in enumerate(rows):
        if limit is not None and position >= limit:
            values["geocode_confidence"][position] = "skipped"
            continue

        address = row_address(row, header_map)
        if not address:
            values["geocode_confidence"][position] = "empty"
            continue

        hit = chain.geocode(address)
        if hit is None:
            values["geocode_confidence"][position] = "failed"
            continue

        values["latitude"][position] = f"{hit.latitude:.7f}"
        values["longitude"][position] = f"{hit.longitude:.7f}"
        values["geocode_confidence"][position] = hit.confidence
        values["geocode_provider"][position] = hit.provider

    for column in RESULT_COLUMNS:
        result[column] = values[column]
    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the geocoding job."""
    setup_job_logging("geocode_csv")

    parser = argparse.ArgumentParser(description="Geocode addresses in a CSV or XLSX file")
    parser.add_argument("--input", type=str, required=True, help="Path to CSV or XLSX file")
    parser.add_argument("--output", type=str, help="Output CSV path (default: <out_dir>/<input>_geocoded.csv)")
    parser.add_argument(
        "--providers",
        type=str,
        help="Comma-separated fallback chain, e.g. google,nominatim (overrides config)"
    )
    parser.add_argument("--limit", type=int, help="Maximum rows to geocode this run")
    parser.add_argument("--qps", type=float, help="Requests per second per provider (overrides config)")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the DuckDB geocode cache")
    args = parser.parse_args(argv)

    start_time = datetime.now()
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else settings.out_dir / f"{input_path.stem}_geocoded.csv"

    if args.qps is not None:
        settings.geocode_qps = args.qps

    try:
        names = args.providers.split(",") if args.providers else None
        chain = GeocoderChain(
            build_providers(names),
            cache=None if args.no_cache else GeocodeCache()
        )
        df = read_data_file(input_path)
        geocoded = geocode_frame(df, chain, limit=args.limit)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Geocoding aborted: {e}")
        return 1

    output_path.parent.mkdir(parents=True, exist_ok=True)
    geocoded.to_csv(output_path, index=False, encoding="utf-8")

    duration = (datetime.now() - start_time).total_seconds()
    found = int((geocoded["latitude"] != "").sum())
    logger.info(
        f"Geocoded {found}/{len(geocoded)} rows in {duration:.2f} seconds "
        f"(sources: {chain.stats}); wrote {output_path}",
        extra={"duration": duration}
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
