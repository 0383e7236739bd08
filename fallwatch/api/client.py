"""
Async notification client for fall alerts.
Posts fall events as JSON to a caregiver alert webhook.
"""

import asyncio
import logging
import time
from typing import Protocol

import aiohttp

from ..models import FallEvent

logger = logging.getLogger(__name__)


class FallNotifier(Protocol):
    """Notification collaborator: delivers a fall alert, True on success."""

    async def notify_fall(self, event: FallEvent) -> bool: ...


class AsyncNotificationClient:
    """
    Non-blocking alert client with retry logic.

    Push delivery and real-time broadcast happen behind the webhook; this
    client only hands the event over. Retries with backoff are the client's
    own delivery policy, the engine never re-sends an event.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        timeout: int = 10,
        retry_attempts: int = 3,
        retry_delays: tuple[int, ...] = (1, 2, 4),
    ):
        """
        Initialize notification client.

        Args:
            endpoint: URL of the fall alert webhook
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            retry_attempts: Number of attempts per alert
            retry_delays: Delay in seconds between attempts (exponential backoff)
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delays = retry_delays or (1,)

        # Session will be created when needed (in async context)
        self._session: aiohttp.ClientSession | None = None

        logger.info(
            f"Initialized Notification Client: "
            f"timeout={timeout}s, retries={self.retry_attempts}"
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """
        Get or create aiohttp session.

        Returns:
            Active ClientSession instance
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("Notification client session closed")

    def _get_headers(self) -> dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(self, event: FallEvent) -> dict:
        """
        Build the JSON body for a fall alert.

        Args:
            event: Fall event to announce

        Returns:
            Dictionary with event type, event fields and send time
        """
        return {
            "event_type": "fall_detected",
            "sent_at": time.time(),
            **event.to_dict(),
        }

    def _delay_for(self, attempt: int) -> int:
        if attempt < len(self.retry_delays):
            return self.retry_delays[attempt]
        return self.retry_delays[-1]

    async def notify_fall(self, event: FallEvent) -> bool:
        """
        Send a fall alert to the webhook.

        Args:
            event: Fall event to announce

        Returns:
            True if the webhook accepted the alert (or did after a retry)
        """
        if not self.endpoint:
            logger.warning("Notification endpoint not configured, skipping alert")
            return False

        session = await self._get_session()
        payload = self.build_payload(event)

        for attempt in range(self.retry_attempts):
            try:
                logger.info(
                    f"Sending fall alert for event {event.id} "
                    f"(attempt {attempt + 1}/{self.retry_attempts})"
                )

                async with session.post(
                    self.endpoint, json=payload, headers=self._get_headers()
                ) as response:

                    if 200 <= response.status < 300:
                        logger.info(f"Fall alert delivered for event {event.id}")
                        return True
                    else:
                        error_text = await response.text()
                        logger.error(
                            f"Fall alert rejected with status {response.status}: "
                            f"{error_text}"
                        )

            except TimeoutError:
                logger.warning(f"Fall alert timeout (attempt {attempt + 1})")

            except aiohttp.ClientError as e:
                logger.warning(
                    f"Network error during fall alert (attempt {attempt + 1}): {e}"
                )

            # Wait before retry (except on last attempt)
            if attempt < self.retry_attempts - 1:
                delay = self._delay_for(attempt)
                logger.info(f"Retrying in {delay} seconds...")
                await asyncio.sleep(delay)

        logger.error(
            f"Failed to deliver fall alert for event {event.id} "
            f"after {self.retry_attempts} attempts"
        )
        return False

    async def health_check(self) -> bool:
        """
        Check if the alert endpoint is reachable.

        Returns:
            True if the endpoint answers without a server error
        """
        if not self.endpoint:
            logger.warning("No notification endpoint configured")
            return False

        session = await self._get_session()
        try:
            async with session.get(self.endpoint, headers=self._get_headers()) as response:
                reachable = response.status < 500
                logger.info(
                    f"Notification endpoint: {'reachable' if reachable else 'unreachable'} "
                    f"(status {response.status})"
                )
                return reachable
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning(f"Notification endpoint unreachable: {e}")
            return False

    def __repr__(self) -> str:
        return (
            f"AsyncNotificationClient("
            f"endpoint={bool(self.endpoint)}, "
            f"retries={self.retry_attempts})"
        )
