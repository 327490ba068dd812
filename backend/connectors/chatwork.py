"""Chatwork message sender."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class ChatworkSender:
    """Posts messages to one Chatwork room, wrapped in an [info] block."""

    name = "chatwork"
    BASE_URL = "https://api.chatwork.com/v2"

    def __init__(
        self,
        api_token: Optional[str],
        room_id: Optional[str],
        title: str = "CPN仕分けレポート",
        timeout: float = 10.0,
    ):
        self.api_token = api_token
        self.room_id = room_id
        self.title = title
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_token and self.room_id)

    def format_body(self, message: str) -> str:
        return f"[info][title]{self.title}[/title]{message}[/info]"

    def send(self, message: str) -> bool:
        """Best-effort send; failures are logged and reported as False."""
        if not self.configured:
            logger.warning("[Notify] Chatwork token or room id is not set")
            return False

        try:
            response = requests.post(
                f"{self.BASE_URL}/rooms/{self.room_id}/messages",
                headers={"X-ChatWorkToken": self.api_token},
                data={"body": self.format_body(message)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("[Notify] Chatwork request failed: %s", e)
            return False

        if not response.ok:
            logger.warning("[Notify] Chatwork API error: %s %s", response.status_code, response.text[:200])
            return False

        return True
