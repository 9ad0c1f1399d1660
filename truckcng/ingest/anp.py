"""ANP reseller API page source."""
import logging
import math
from typing import List, Optional

import requests
from pydantic import BaseModel, ConfigDict

from truckcng.config import settings
from truckcng.ingest.models import StationRecord, parse_page

logger = logging.getLogger(__name__)


class RateLimitedError(Exception):
    """ANP answered 429; ``retry_after`` is the advertised delay in seconds, if any."""

    def __init__(self, page: int, retry_after: Optional[float] = None):
        self.page = page
        self.retry_after = retry_after
        super().__init__(f"Rate limited on page {page} (retry after: {retry_after})")


class UpstreamError(Exception):
    """Any other non-success answer (or transport failure) from ANP."""

    def __init__(self, page: int, status_code: Optional[int] = None, detail: str = ""):
        self.page = page
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Failed to fetch page {page}: status={status_code} {detail}".strip())


class PageResult(BaseModel):
    """Stations from one page plus the declared page count, if ANP sent one."""

    model_config = ConfigDict(frozen=True)

    page: int
    stations: List[StationRecord] = []
    total_pages: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.stations


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header given in seconds.

    HTTP-date values are not supported and return None (callers fall back to
    exponential back-off).
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if math.isfinite(seconds) and seconds >= 0 else None


class AnpClient:
    """HTTP client for ``/v1/combustivel``, one page per call."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url or settings.anp_api_base
        self.timeout = timeout or settings.anp_request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent or settings.anp_user_agent})

    def fetch_page(self, page: int) -> PageResult:
        """
        Fetch one page of stations.

        Args:
            page: 1-based page number

        Returns:
            PageResult; empty when ANP has no more data or the payload is
            malformed

        Raises:
            RateLimitedError: On HTTP 429
            UpstreamError: On any other non-success status or transport error
        """
        try:
            response = self.session.get(
                self.base_url,
                params={"numeropagina": page},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Request for ANP page {page} failed: {e}")
            raise UpstreamError(page, None, str(e)) from e

        if response.status_code == 429:
            raise RateLimitedError(page, parse_retry_after(response.headers.get("Retry-After")))

        if not response.ok:
            raise UpstreamError(page, response.status_code, response.reason or "")

        try:
            anp_page = parse_page(response.json())
        except ValueError as e:
            # Undecodable JSON or schema mismatch: treat as end of data
            logger.warning(f"Malformed payload on ANP page {page}: {e}")
            return PageResult(page=page)

        total_pages = None
        if anp_page.search_page_filter and anp_page.search_page_filter.total_pages:
            total_pages = anp_page.search_page_filter.total_pages

        return PageResult(page=page, stations=anp_page.data or [], total_pages=total_pages)
