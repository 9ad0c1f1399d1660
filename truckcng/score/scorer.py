"""Station enrichment and accuracy scoring."""
import logging
import math
from functools import reduce
from typing import Callable, Iterable, List, Optional, Sequence

from truckcng.ingest.models import StationRecord
from truckcng.score.filters import (
    filter_stations,
    has_cng,
    has_diesel_capacity,
    has_road_hints,
    is_active,
)
from truckcng.score.rules import (
    DIESEL_MIN_CAPACITY,
    GPS_BONUS_MAX,
    MAX_SCORE,
    SCORING_RULES,
    TRUSTED_SCORE,
)

logger = logging.getLogger(__name__)

StationEnricher = Callable[[StationRecord], StationRecord]


def apply_enrichers(station: StationRecord, enrichers: Sequence[StationEnricher]) -> StationRecord:
    """Run a station through each enricher in order, feeding outputs forward."""
    return reduce(lambda current, enricher: enricher(current), enrichers, station)


def enrich_stations(
    stations: Iterable[StationRecord],
    enrichers: Sequence[StationEnricher]
) -> List[StationRecord]:
    """Apply the enricher chain to every station."""
    return [apply_enrichers(station, enrichers) for station in stations]


def make_trust_enricher(trusted_tax_ids: Iterable[str]) -> StationEnricher:
    """
    Build the trust-flag enricher for a given allowlist of tax ids.

    Args:
        trusted_tax_ids: CNPJs of vetted operators, matched exactly

    Returns:
        Enricher setting ``trusted`` on a copy of the station
    """
    allowlist = frozenset(trusted_tax_ids)

    def add_trust_flag(station: StationRecord) -> StationRecord:
        trusted = station.tax_id is not None and station.tax_id in allowlist
        return station.model_copy(update={"trusted": trusted})

    return add_trust_flag


def parse_accuracy_estimate(raw: Optional[str]) -> Optional[float]:
    """
    Parse ANP's ``estimativaAcuracia`` string.

    Accepts a comma decimal separator. Returns None for blank, non-numeric
    or non-finite values.
    """
    if raw is None or not str(raw).strip():
        return None
    try:
        value = float(str(raw).strip().replace(",", "."))
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def gps_bonus(raw_estimate: Optional[str]) -> float:
    """Bonus of 10 - min(estimate, 10), floored at 0; smaller reported error scores higher."""
    estimate = parse_accuracy_estimate(raw_estimate)
    if estimate is None:
        return 0.0
    return max(0.0, GPS_BONUS_MAX - min(estimate, GPS_BONUS_MAX))


def calculate_score(station: StationRecord, min_capacity: float = DIESEL_MIN_CAPACITY) -> float:
    """
    Calculate the accuracy score for a station.

    Trusted stations score 100 outright. Otherwise 20 points for each of
    CNG, diesel capacity, road hints and active status, plus the GPS bonus,
    capped at 100.

    Args:
        station: Station record (trust flag already set)
        min_capacity: Minimum summed diesel capacity

    Returns:
        Score in [0, 100]
    """
    if station.trusted:
        return TRUSTED_SCORE

    score = 0.0
    if has_cng(station):
        score += SCORING_RULES["CNG"]
    if has_diesel_capacity(station, min_capacity):
        score += SCORING_RULES["DIESEL_CAP"]
    if has_road_hints(station):
        score += SCORING_RULES["ROAD"]
    if is_active(station):
        score += SCORING_RULES["ACTIVE"]

    score += gps_bonus(station.accuracy_estimate)

    return min(score, MAX_SCORE)


def make_score_enricher(min_capacity: float = DIESEL_MIN_CAPACITY) -> StationEnricher:
    """Build the accuracy-score enricher."""

    def add_accuracy_score(station: StationRecord) -> StationRecord:
        return station.model_copy(update={"accuracy_score": calculate_score(station, min_capacity)})

    return add_accuracy_score


add_accuracy_score = make_score_enricher()


def default_enrichers(
    trusted_tax_ids: Iterable[str],
    min_capacity: float = DIESEL_MIN_CAPACITY
) -> List[StationEnricher]:
    """Trust flag first, then score: the score reads the flag."""
    return [make_trust_enricher(trusted_tax_ids), make_score_enricher(min_capacity)]


def sort_by_score(stations: Iterable[StationRecord]) -> List[StationRecord]:
    """Sort by descending accuracy score, keeping source order on ties."""
    return sorted(stations, key=lambda s: s.accuracy_score, reverse=True)


def score_page(
    stations: Iterable[StationRecord],
    trusted_tax_ids: Iterable[str],
    min_capacity: float = DIESEL_MIN_CAPACITY
) -> List[StationRecord]:
    """
    Filter, enrich and rank one batch of stations.

    Args:
        stations: Raw station records
        trusted_tax_ids: Allowlist for the trust flag
        min_capacity: Minimum summed diesel capacity

    Returns:
        Matching stations, highest score first
    """
    matched = filter_stations(stations, min_capacity)
    enriched = enrich_stations(matched, default_enrichers(trusted_tax_ids, min_capacity))
    ranked = sort_by_score(enriched)
    if ranked:
        logger.info(
            f"Scored {len(ranked)} stations "
            f"({sum(1 for s in ranked if s.trusted)} trusted, top score {ranked[0].accuracy_score:.1f})"
        )
    return ranked
