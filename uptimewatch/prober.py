"""Single bounded-time HTTP probe of one endpoint."""

import logging
import time
from datetime import UTC, datetime

import requests

from .config import DEFAULT_USER_AGENT
from .models import FailureKind, ProbeOutcome

logger = logging.getLogger(__name__)


def _is_success_status(status_code: int) -> bool:
    """Only 2xx responses count as reachable."""
    return 200 <= status_code < 300


def check_endpoint(
    endpoint: str,
    timeout: float,
    method: str = "GET",
    user_agent: str = DEFAULT_USER_AGENT,
) -> ProbeOutcome:
    """Perform a single HTTP check on an endpoint.

    Redirects are followed and the final status code is classified. The body
    is never downloaded. Failures are returned as an unreachable outcome,
    never raised.

    Args:
        endpoint: URL to probe.
        timeout: Connect and read timeout in seconds.
        method: HTTP method, GET or HEAD.
        user_agent: Value of the User-Agent header.

    Returns:
        ProbeOutcome with verdict, latency and diagnostic.
    """
    start = time.monotonic()
    checked_at = datetime.now(UTC)

    def elapsed_ms() -> int:
        return int((time.monotonic() - start) * 1000)

    try:
        response = requests.request(
            method,
            endpoint,
            timeout=timeout,
            allow_redirects=True,
            stream=True,
            headers={"User-Agent": user_agent},
        )
        latency = elapsed_ms()
        response.close()

    except requests.Timeout:
        return ProbeOutcome(
            endpoint=endpoint,
            is_up=False,
            response_time_ms=elapsed_ms(),
            checked_at=checked_at,
            failure=FailureKind.TIMEOUT,
            error_message=f"Timeout after {timeout}s",
        )

    except requests.ConnectionError as e:
        return ProbeOutcome(
            endpoint=endpoint,
            is_up=False,
            response_time_ms=elapsed_ms(),
            checked_at=checked_at,
            failure=FailureKind.CONNECTION,
            error_message=f"Connection failed: {e}",
        )

    except Exception as e:
        logger.debug("Unexpected probe error for %s", endpoint, exc_info=True)
        return ProbeOutcome(
            endpoint=endpoint,
            is_up=False,
            response_time_ms=elapsed_ms(),
            checked_at=checked_at,
            failure=FailureKind.REQUEST,
            error_message=str(e) or type(e).__name__,
        )

    if _is_success_status(response.status_code):
        return ProbeOutcome(
            endpoint=endpoint,
            is_up=True,
            response_time_ms=latency,
            checked_at=checked_at,
            status_code=response.status_code,
        )

    return ProbeOutcome(
        endpoint=endpoint,
        is_up=False,
        response_time_ms=latency,
        checked_at=checked_at,
        status_code=response.status_code,
        failure=FailureKind.HTTP_STATUS,
        error_message=f"HTTP {response.status_code}: {response.reason}",
    )
