"""Station classification predicates."""
import logging
from typing import Iterable, List

from truckcng.entity.normalize import normalize_text
from truckcng.ingest.models import StationRecord
from truckcng.score.rules import (
    ACTIVE_STATUS,
    CNG_PRODUCT,
    DIESEL_GRADES,
    DIESEL_MIN_CAPACITY,
    ROAD_HINTS,
)

logger = logging.getLogger(__name__)

_CNG_PRODUCT_FOLDED = CNG_PRODUCT.casefold()


def is_active(station: StationRecord) -> bool:
    """
    Classify if the inspected status marks the station as active.

    Args:
        station: Station record

    Returns:
        True if status code is "200", False otherwise
    """
    if not station.status_code:
        return False
    return station.status_code.casefold() == ACTIVE_STATUS


def has_cng(station: StationRecord) -> bool:
    """
    Classify if the station sells CNG from at least one dispenser.

    A CNG product with zero (or unknown) dispensers does not count.
    """
    return any(
        product.name is not None
        and product.name.casefold() == _CNG_PRODUCT_FOLDED
        and (product.dispenser_count or 0) > 0
        for product in station.products
    )


def has_road_hints(station: StationRecord) -> bool:
    """Classify if street or complement mention a highway (RODOVIA, DUTRA, KM)."""
    haystack = normalize_text(f"{station.street or ''} {station.complement or ''}")
    return any(hint in haystack for hint in ROAD_HINTS)


def is_diesel_grade(product_name: str) -> bool:
    """Check if a product name is an S10 or S500 diesel grade."""
    if not product_name or not product_name.strip():
        return False
    upper = product_name.upper()
    return any(grade in upper for grade in DIESEL_GRADES)


def has_diesel_capacity(station: StationRecord, min_capacity: float = DIESEL_MIN_CAPACITY) -> bool:
    """
    Classify if combined diesel tankage is large enough for trucks.

    Capacities of every S10/S500 entry are summed (missing capacity counts
    as 0). Units are not converted.

    Args:
        station: Station record
        min_capacity: Minimum summed capacity

    Returns:
        True if there is at least one diesel entry and the sum >= min_capacity
    """
    diesel_tanks = [
        product.tank_capacity or 0
        for product in station.products
        if is_diesel_grade(product.name)
    ]
    if not diesel_tanks:
        return False
    return sum(diesel_tanks) >= min_capacity


def matches_truck_cng(station: StationRecord, min_capacity: float = DIESEL_MIN_CAPACITY) -> bool:
    """Conjunction of all four predicates, cheapest first."""
    return (
        is_active(station)
        and has_cng(station)
        and has_road_hints(station)
        and has_diesel_capacity(station, min_capacity)
    )


def filter_stations(
    stations: Iterable[StationRecord],
    min_capacity: float = DIESEL_MIN_CAPACITY
) -> List[StationRecord]:
    """
    Keep stations that look like usable truck CNG stops.

    Args:
        stations: Station records in source order
        min_capacity: Minimum summed diesel capacity

    Returns:
        Matching stations, input order preserved
    """
    stations = list(stations)
    matched = [s for s in stations if matches_truck_cng(s, min_capacity)]
    logger.debug(f"Filtered {len(stations)} stations down to {len(matched)}")
    return matched
