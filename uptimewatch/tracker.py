"""Per-endpoint status state machine."""

import logging
from collections.abc import Iterable

from .models import EndpointState, ProbeOutcome, Status, TransitionEvent

logger = logging.getLogger(__name__)


class StatusTracker:
    """Track the coarse up/down status of each endpoint.

    Every endpoint starts as UNKNOWN. The first observation only establishes
    the status; afterwards a TransitionEvent is produced exactly when the
    verdict flips between UP and DOWN.
    """

    def __init__(self, endpoints: Iterable[str] = ()) -> None:
        self._states: dict[str, EndpointState] = {
            endpoint: EndpointState(endpoint=endpoint) for endpoint in endpoints
        }

    def state(self, endpoint: str) -> EndpointState:
        """Return the state record for an endpoint, creating it if unseen."""
        if endpoint not in self._states:
            self._states[endpoint] = EndpointState(endpoint=endpoint)
        return self._states[endpoint]

    def states(self) -> dict[str, EndpointState]:
        return dict(self._states)

    def is_initial(self, endpoint: str) -> bool:
        """True while the endpoint has not been observed yet."""
        return self.state(endpoint).status is Status.UNKNOWN

    def observe(self, outcome: ProbeOutcome) -> TransitionEvent | None:
        """Apply a probe outcome to the endpoint's state.

        Args:
            outcome: Result of the latest probe of the endpoint.

        Returns:
            A TransitionEvent if the verdict changed from UP to DOWN or back,
            None for the first observation and for repeated verdicts.
        """
        state = self.state(outcome.endpoint)
        previous = state.status
        current = outcome.status

        state.last_checked_at = outcome.checked_at
        state.last_response_time_ms = outcome.response_time_ms

        if previous is Status.UNKNOWN:
            state.status = current
            state.status_since = outcome.checked_at
            logger.debug("%s: initial status %s", outcome.endpoint, current.value)
            return None

        if previous is current:
            return None

        downtime_seconds: float | None = None
        if current is Status.UP and state.status_since is not None:
            downtime_seconds = max((outcome.checked_at - state.status_since).total_seconds(), 0.0)

        state.status = current
        state.status_since = outcome.checked_at

        logger.info("%s: status changed %s -> %s", outcome.endpoint, previous.value, current.value)
        return TransitionEvent(
            endpoint=outcome.endpoint,
            previous=previous,
            current=current,
            timestamp=outcome.checked_at,
            response_time_ms=outcome.response_time_ms if current is Status.UP else None,
            downtime_seconds=downtime_seconds,
        )
