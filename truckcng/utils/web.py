"""HTTP client utilities with retry logic."""
import logging
from typing import Any, Dict, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


class TransientHTTPError(requests.HTTPError):
    """5xx answer worth retrying."""


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout, TransientHTTPError)),
    reraise=True
)
def get_json(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 30
) -> Any:
    """
    GET a JSON document, retrying connection errors, timeouts and 5xx answers.

    Args:
        url: Request URL
        params: Query parameters
        headers: Request headers
        timeout: Request timeout in seconds

    Returns:
        Decoded JSON body

    Raises:
        requests.RequestException: If request fails after retries or with a 4xx
    """
    try:
        response = requests.get(url, params=params, headers=headers, timeout=timeout)
        if response.status_code >= 500:
            raise TransientHTTPError(f"{response.status_code} from {url}", response=response)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        logger.warning(f"Request failed: {e}")
        raise
