import logging
from typing import Optional

import httpx

from .errors import ServiceError, from_http_error
from .metrics import provider_failures, provider_fetches

logger = logging.getLogger(__name__)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    params: dict,
    domain: str,
    error_cls: type[ServiceError] = ServiceError,
    what: str = "data",
    city: Optional[str] = None,
) -> dict:
    """GET a provider endpoint and decode JSON; failures become coded service errors."""
    provider_fetches.labels(domain).inc()
    try:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as exc:
        provider_failures.labels(domain).inc()
        logger.warning("%s fetch failed for %s: %s", domain, city or url, exc)
        raise from_http_error(exc, error_cls, what, city) from exc
    except ValueError as exc:
        provider_failures.labels(domain).inc()
        logger.warning("%s returned malformed JSON for %s: %s", domain, city or url, exc)
        raise error_cls(f"Malformed {what} response from provider", "INVALID_RESPONSE") from exc
    if not isinstance(data, dict):
        provider_failures.labels(domain).inc()
        logger.warning(
            "%s returned %s instead of an object for %s", domain, type(data).__name__, city or url
        )
        raise error_cls(f"Malformed {what} response from provider", "INVALID_RESPONSE")
    return data
