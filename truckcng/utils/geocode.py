"""Geocoding utilities with caching and a provider fallback chain."""
import hashlib
import logging
import time
from typing import Dict, Iterable, List, Optional, Protocol

import duckdb
import googlemaps
from pydantic import BaseModel, ConfigDict

from truckcng.config import settings
from truckcng.utils.web import get_json

logger = logging.getLogger(__name__)


class GeocodeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    confidence: str
    provider: str


class GeocodeProvider(Protocol):
    name: str

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        ...


class Throttle:
    """Minimum spacing between calls to one provider."""

    def __init__(self, qps: float):
        self.min_interval = 1.0 / qps if qps > 0 else 0.0
        self._last_request_time = 0.0

    def wait(self):
        if self.min_interval <= 0:
            return
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.min_interval:
            time.sleep(self.min_interval - elapsed)
        self._last_request_time = time.monotonic()


class GoogleGeocoder:
    """Google Maps Geocoding API, biased to Brazil."""

    name = "google"

    def __init__(
        self,
        api_key: Optional[str] = None,
        qps: Optional[float] = None,
        client: Optional[googlemaps.Client] = None
    ):
        if client is None:
            api_key = api_key or settings.google_maps_api_key
            if not api_key:
                raise ValueError("GOOGLE_MAPS_API_KEY not set in environment")
            client = googlemaps.Client(key=api_key)
        self.client = client
        self.throttle = Throttle(settings.geocode_qps if qps is None else qps)

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        self.throttle.wait()
        result = self.client.geocode(address, region="br")
        if not result:
            return None

        geometry = result[0]["geometry"]
        location_type = geometry.get("location_type", "")
        if location_type == "ROOFTOP":
            confidence = "high"
        elif location_type in ("RANGE_INTERPOLATED", "GEOMETRIC_CENTER"):
            confidence = "medium"
        else:
            confidence = "low"

        return GeocodeResult(
            latitude=geometry["location"]["lat"],
            longitude=geometry["location"]["lng"],
            confidence=confidence,
            provider=self.name
        )


class NominatimGeocoder:
    """OpenStreetMap Nominatim search; public instance allows 1 request/second."""

    name = "nominatim"

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        qps: Optional[float] = None,
        timeout: int = 10
    ):
        self.base_url = base_url or settings.nominatim_url
        self.user_agent = user_agent or settings.nominatim_user_agent
        self.timeout = timeout
        self.throttle = Throttle(min(settings.geocode_qps if qps is None else qps, 1.0))

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        self.throttle.wait()
        data = get_json(
            self.base_url,
            params={"q": address, "format": "jsonv2", "limit": 1, "countrycodes": "br"},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout
        )
        if not data:
            return None

        hit = data[0]
        place_rank = int(hit.get("place_rank") or 0)
        if place_rank >= 30:
            confidence = "high"
        elif place_rank >= 26:
            confidence = "medium"
        else:
            confidence = "low"

        return GeocodeResult(
            latitude=float(hit["lat"]),
            longitude=float(hit["lon"]),
            confidence=confidence,
            provider=self.name
        )


PROVIDERS = {
    GoogleGeocoder.name: GoogleGeocoder,
    NominatimGeocoder.name: NominatimGeocoder,
}


def build_providers(names: Optional[Iterable[str]] = None) -> List[GeocodeProvider]:
    """
    Instantiate providers in fallback order.

    Raises:
        ValueError: On an unknown provider name, an empty chain, or missing
            credentials for a named provider
    """
    names = [n.strip().lower() for n in (names or settings.geocode_providers) if n.strip()]
    if not names:
        raise ValueError("No geocoding providers configured")

    providers = []
    for name in names:
        if name not in PROVIDERS:
            raise ValueError(f"Unknown geocoding provider: {name}")
        providers.append(PROVIDERS[name]())
    return providers


def address_hash(address: str) -> str:
    return hashlib.md5(address.strip().lower().encode()).hexdigest()


class GeocodeCache:
    """DuckDB-backed cache of successful lookups."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or str(settings.cache_geocode_db)
        self.init_geocode_cache()

    def init_geocode_cache(self):
        conn = duckdb.connect(self.db_path)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS geocode_cache (
                address_hash VARCHAR PRIMARY KEY,
                address TEXT,
                latitude DOUBLE,
                longitude DOUBLE,
                confidence VARCHAR,
                provider VARCHAR,
                cached_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.close()

    def get(self, address: str) -> Optional[GeocodeResult]:
        conn = duckdb.connect(self.db_path)
        cached = conn.execute(
            "SELECT latitude, longitude, confidence, provider FROM geocode_cache WHERE address_hash = ?",
            [address_hash(address)]
        ).fetchone()
        conn.close()

        if not cached:
            return None
        return GeocodeResult(
            latitude=cached[0],
            longitude=cached[1],
            confidence=cached[2] or "cached",
            provider=cached[3] or "cache"
        )

    def put(self, address: str, result: GeocodeResult):
        conn = duckdb.connect(self.db_path)
        conn.execute(
            """
            INSERT OR REPLACE INTO geocode_cache
            (address_hash, address, latitude, longitude, confidence, provider)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [address_hash(address), address, result.latitude, result.longitude,
             result.confidence, result.provider]
        )
        conn.close()


class GeocoderChain:
    """Try each provider in order until one returns a result."""

    def __init__(self, providers: List[GeocodeProvider], cache: Optional[GeocodeCache] = None):
        self.providers = providers
        self.cache = cache
        self.stats: Dict[str, int] = {"cache": 0, "miss": 0}

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        """
        Geocode an address.

        Args:
            address: Single-line address

        Returns:
            First provider result (or cached result), None when every
            provider failed or found nothing
        """
        if not address or not address.strip():
            return None

        if self.cache:
            cached = self.cache.get(address)
            if cached:
                self.stats["cache"] += 1
                logger.debug(f"Cache hit for address: {address[:50]}...")
                return cached

        for provider in self.providers:
            try:
                result = provider.geocode(address)
            except Exception as e:
                logger.warning(f"{provider.name} geocoding error for {address[:50]}...: {e}")
                continue

            if result:
                self.stats[provider.name] = self.stats.get(provider.name, 0) + 1
                if self.cache:
                    self.cache.put(address, result)
                logger.debug(f"Geocoded via {provider.name}: {address[:50]}... -> ({result.latitude}, {result.longitude})")
                return result

            logger.debug(f"No {provider.name} results for address: {address[:50]}...")

        self.stats["miss"] += 1
        logger.warning(f"No results for address: {address[:50]}...")
        return None
