"""Truck CNG station CSV export."""
import csv
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import quote

import pandas as pd

from truckcng.config import settings
from truckcng.ingest.models import StationRecord
from truckcng.utils.io import atomic_replace

logger = logging.getLogger(__name__)

# Output schema: column order is fixed
CSV_HEADERS: List[str] = [
    "status",
    "site_name",
    "street",
    "zip_code",
    "city",
    "country",
    "country_code",
    "latitude",
    "longitude",
    "operator",
    "verified_for_trucks",
    "green_certified",
    "lots_partner",
    "restrooms",
    "food",
    "wifi",
    "card_terminal",
    "truck_parking",
    "showers",
    "truck_wash",
    "google_maps_url",
    "date_when_added_to_list",
    "source",
    "comments",
    "accuracy_score",
]

GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps?q="


def google_maps_url(station: StationRecord) -> str:
    """
    Build a Maps search link from name, street, city and state.

    Returns "" when name, street and city are all blank.
    """
    if not any((s or "").strip() for s in (station.legal_name, station.street, station.city)):
        return ""

    query = f"{station.legal_name or ''} {station.street or ''} {station.city or ''} {station.state or ''}"
    return GOOGLE_MAPS_SEARCH_URL + quote(query, safe="")


def station_to_row(
    station: StationRecord,
    today: Optional[date] = None,
    source: Optional[str] = None
) -> Dict[str, str]:
    """
    Map an enriched station onto the output schema.

    Columns without a data source yet are emitted empty (``lots_partner``
    defaults to "false").

    Args:
        station: Enriched station record
        today: Date stamped into ``date_when_added_to_list`` (UTC today if omitted)
        source: Source tag (settings.source_tag if omitted)

    Returns:
        Dict with a string value for every column in CSV_HEADERS
    """
    today = today or datetime.now(timezone.utc).date()

    row = {header: "" for header in CSV_HEADERS}
    row.update({
        "status": station.status_code or "",
        "site_name": station.legal_name or "",
        "street": station.street or "",
        "zip_code": station.zip_code or "",
        "city": station.city or "",
        "country": "Brazil",
        "country_code": "BR",
        "operator": station.distributor or "",
        "verified_for_trucks": "true" if station.trusted else "false",
        "lots_partner": "false",
        "google_maps_url": google_maps_url(station),
        "date_when_added_to_list": today.strftime("%Y-%m-%d"),
        "source": source or settings.source_tag,
        "accuracy_score": f"{station.accuracy_score:.1f}",
    })
    return row


def stations_to_frame(
    stations: Iterable[StationRecord],
    today: Optional[date] = None,
    source: Optional[str] = None
) -> pd.DataFrame:
    """Build the export DataFrame with columns in schema order."""
    rows = [station_to_row(s, today, source) for s in stations]
    return pd.DataFrame(rows, columns=CSV_HEADERS, dtype=str)


class StationCsvSink:
    """CSV file that receives scored stations, either in one go or page by page."""

    def __init__(
        self,
        path: Union[str, Path],
        source: Optional[str] = None,
        today: Optional[date] = None
    ):
        self.path = Path(path)
        self.source = source
        self.today = today

    def _to_csv(self, df: pd.DataFrame, target: Path, header: bool, mode: str = "w"):
        df.to_csv(
            target,
            index=False,
            header=header,
            mode=mode,
            encoding="utf-8",
            quoting=csv.QUOTE_ALL,
            lineterminator="\n",
        )

    def write_all(self, stations: Iterable[StationRecord]) -> int:
        """
        Replace the file with a header and one row per station.

        Returns:
            Number of rows written
        """
        df = stations_to_frame(stations, self.today, self.source)
        with atomic_replace(self.path) as tmp_path:
            self._to_csv(df, tmp_path, header=True)
        logger.info(f"Wrote {len(df)} stations to {self.path}")
        return len(df)

    def append(self, stations: Iterable[StationRecord]) -> int:
        """
        Append one row per station; the header is written only for a new file.

        The rows land in a copy of the file that is renamed into place, so a
        crash mid-write leaves the previous contents intact.

        Returns:
            Number of rows appended
        """
        df = stations_to_frame(stations, self.today, self.source)
        is_new = not self.path.exists()
        if df.empty and not is_new:
            return 0

        with atomic_replace(self.path, copy_existing=True) as tmp_path:
            self._to_csv(df, tmp_path, header=is_new, mode="a")
        logger.info(f"Appended {len(df)} stations to {self.path}")
        return len(df)

    def count_rows(self) -> int:
        """Number of data rows currently in the file."""
        if not self.path.exists():
            return 0
        return len(pd.read_csv(self.path, dtype=str, keep_default_na=False))

    def read_text(self) -> str:
        """Full file contents, or "" if nothing was written yet."""
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")
