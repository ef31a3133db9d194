"""
HTTP Utilities

Shared helpers for calls to external services. All helpers take the
pipeline's ``httpx.AsyncClient`` so one connection pool serves a whole run,
and all of them record the external API metrics.
"""

import logging
import time
from typing import Any, Optional

import httpx

from compliance.core.metrics import (
    external_api_duration_seconds,
    external_api_errors_total,
    external_api_rate_limit_hits_total,
    external_api_requests_total,
)

logger = logging.getLogger(__name__)


class HTTPRequestError(Exception):
    """Base exception for HTTP request failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    json: Optional[Any] = None,
    timeout: float = 30.0,
    service_name: str = "External API",
) -> Any:
    """
    Issue a request and decode its JSON body.

    Raises:
        HTTPRequestError: on timeout, transport error, non-2xx status or a
            body that is not valid JSON.
    """
    start_time = time.time()
    external_api_requests_total.labels(service=service_name).inc()
    try:
        response = await client.request(method, url, json=json, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.TimeoutException:
        external_api_errors_total.labels(service=service_name).inc()
        raise HTTPRequestError(f"Timeout after {timeout}s on {service_name}")
    except httpx.HTTPStatusError as e:
        external_api_errors_total.labels(service=service_name).inc()
        status = e.response.status_code
        if status == 429:
            external_api_rate_limit_hits_total.labels(service=service_name).inc()
        raise HTTPRequestError(f"HTTP {status} from {service_name}", status_code=status)
    except httpx.HTTPError as e:
        external_api_errors_total.labels(service=service_name).inc()
        raise HTTPRequestError(f"Connection error on {service_name}: {e}")
    except ValueError as e:
        external_api_errors_total.labels(service=service_name).inc()
        raise HTTPRequestError(f"Invalid JSON from {service_name}: {e}")

    duration = time.time() - start_time
    external_api_duration_seconds.labels(service=service_name).observe(duration)
    return data


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    timeout: float = 30.0,
    service_name: str = "External API",
) -> Optional[dict]:
    """
    Fetch JSON from a URL with error handling.

    Args:
        client: Shared async client
        url: The URL to fetch
        timeout: Request timeout in seconds
        service_name: Name for logging and metrics

    Returns:
        Parsed JSON dict, or None if request failed
    """
    try:
        data = await request_json(
            client, "GET", url, timeout=timeout, service_name=service_name
        )
    except HTTPRequestError as e:
        if e.status_code != 404:  # 404 is often expected
            logger.debug(f"{e} ({url})")
        return None
    return data if isinstance(data, dict) else None


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    data: Any,
    timeout: float = 30.0,
    service_name: str = "External API",
) -> Any:
    """
    POST JSON to a URL. Failures propagate as HTTPRequestError so callers can
    record the reason.
    """
    return await request_json(
        client, "POST", url, json=data, timeout=timeout, service_name=service_name
    )
