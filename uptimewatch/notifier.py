"""Best-effort webhook notifications for initial status and status transitions."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime

import requests

from .config import NotifierConfig
from .models import Status, TransitionEvent

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    Status.UP: "🟢",
    Status.DOWN: "🔴",
}


def _format_time(timestamp: datetime) -> str:
    return timestamp.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def _format_duration(seconds: float) -> str:
    """Render a duration like ``1h 2m 3s``."""
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_initial_message(endpoint: str, status: Status, timestamp: datetime) -> str:
    icon = STATUS_ICONS[status]
    return f"{icon} {endpoint} is {status.value.upper()} (initial status, Time: {_format_time(timestamp)})"


def format_transition_message(event: TransitionEvent) -> str:
    """Build the human-readable text for a status transition."""
    icon = STATUS_ICONS[event.current]
    if event.current is Status.DOWN:
        return f"{icon} {event.endpoint} is DOWN! (Time: {_format_time(event.timestamp)})"

    details = [f"Time: {_format_time(event.timestamp)}"]
    if event.response_time_ms is not None:
        details.append(f"Response Time: {event.response_time_ms / 1000:.2f}s")
    if event.downtime_seconds is not None:
        details.append(f"Downtime: {_format_duration(event.downtime_seconds)}")
    return f"{icon} {event.endpoint} is back UP! ({', '.join(details)})"


class Notifier:
    """Deliver status notifications to a webhook sink.

    Deliveries run on a single background worker, so they never stall the
    caller and messages reach the sink in submission order. Failures are
    logged and dropped: there is no retry.
    """

    def __init__(self, config: NotifierConfig) -> None:
        self._config = config
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notifier")

    @property
    def enabled(self) -> bool:
        return self._config.webhook_url is not None

    def announce_initial(self, endpoint: str, status: Status, timestamp: datetime) -> Future | None:
        """Announce the status an endpoint was found in at startup."""
        payload = {
            "text": format_initial_message(endpoint, status, timestamp),
            "event": "initial",
            "endpoint": endpoint,
            "status": status.value,
            "timestamp": timestamp.isoformat(),
        }
        return self._submit(payload)

    def announce_transition(self, event: TransitionEvent) -> Future | None:
        """Announce an up/down transition."""
        payload = {
            "text": format_transition_message(event),
            "event": "transition",
            "endpoint": event.endpoint,
            "previous_status": event.previous.value,
            "status": event.current.value,
            "timestamp": event.timestamp.isoformat(),
        }
        if event.current is Status.UP:
            payload["response_time_ms"] = event.response_time_ms
        return self._submit(payload)

    def send_test(self) -> bool:
        """Synchronously send a test message.

        Returns:
            True if the sink accepted the message, False otherwise.
        """
        if not self.enabled:
            logger.warning("No webhook URL configured")
            return False

        payload = {
            "text": f"✅ uptimewatch test notification (Time: {_format_time(datetime.now(UTC))})",
            "event": "test",
        }
        return self._deliver(payload)

    def close(self, wait: bool = True) -> None:
        """Stop accepting notifications, optionally draining pending ones."""
        self._executor.shutdown(wait=wait)

    def _submit(self, payload: dict) -> Future | None:
        logger.info("Notification: %s", payload["text"])
        if not self.enabled:
            logger.debug("No webhook URL configured, notification not sent")
            return None

        try:
            return self._executor.submit(self._deliver, payload)
        except RuntimeError:
            logger.warning("Notifier is closed, dropping notification for %s", payload.get("endpoint"))
            return None

    def _deliver(self, payload: dict) -> bool:
        """Post one payload to the webhook. Never raises."""
        try:
            response = requests.post(
                self._config.webhook_url,
                json=payload,
                timeout=self._config.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Failed to deliver notification for %s: %s", payload.get("endpoint", "test"), e)
            return False

        logger.debug("Notification delivered for %s", payload.get("endpoint", "test"))
        return True
