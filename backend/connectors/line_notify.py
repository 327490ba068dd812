"""LINE Notify sender."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class LineNotifySender:
    """Sends a message through a LINE Notify token."""

    name = "line"
    API_URL = "https://notify-api.line.me/api/notify"

    def __init__(self, token: Optional[str], timeout: float = 10.0):
        self.token = token
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def send(self, message: str) -> bool:
        if not self.configured:
            logger.warning("[Notify] LINE_NOTIFY_TOKEN is not set")
            return False

        try:
            response = requests.post(
                self.API_URL,
                headers={"Authorization": f"Bearer {self.token}"},
                data={"message": message},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("[Notify] LINE request failed: %s", e)
            return False

        if not response.ok:
            logger.warning("[Notify] LINE Notify error: %s %s", response.status_code, response.text[:200])
            return False

        return True
