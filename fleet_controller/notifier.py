"""
Notifiers reporting finished builds.

Notifications are fire-and-forget: every failure is logged here and never
reaches the scheduler.
"""

import asyncio
import logging

import requests

from fleet_common.errors import NotifierError
from fleet_common.models import BuildPayload
from fleet_common.ports import Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Notifier that only logs outcomes (used when no endpoint is configured)."""

    async def send_build_complete(self, payload: BuildPayload) -> None:
        if payload.error:
            logger.info(f"Build for {payload.server} failed: {payload.error}")
        else:
            logger.info(
                f"Build for {payload.server} succeeded on {payload.branch} "
                f"at {payload.commit}"
            )


class HttpNotifier(Notifier):
    """Posts build payloads as JSON to an HTTP endpoint."""

    def __init__(self, url: str, api_key: str = "", timeout: float = 10.0):
        """
        Initialize the notifier.

        Args:
            url: Endpoint receiving the payloads
            api_key: Optional key sent as a Bearer token
            timeout: Request timeout in seconds
        """
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def _post(self, payload: BuildPayload) -> None:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(
                self.url,
                json=payload.to_dict(),
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotifierError(f"Error sending build notification: {e}") from e

    async def send_build_complete(self, payload: BuildPayload) -> None:
        try:
            await asyncio.to_thread(self._post, payload)
            logger.info(f"Sent build notification for {payload.server}")
        except NotifierError as e:
            logger.error(f"{e} (target {payload.server})")
        except Exception as e:
            logger.error(
                f"Unexpected error notifying build of {payload.server}: {e}",
                exc_info=True,
            )
