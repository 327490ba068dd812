"""
Google Sheets row source.

Reads ranges of text cells through the Sheets v4 values API using an OAuth
refresh token, the same way the other Google connectors authenticate.
"""

import logging
import threading
from typing import Optional
from urllib.parse import quote

import requests

from services.errors import RangeNotFound, SourceUnavailable

logger = logging.getLogger(__name__)


def _json_body(response: requests.Response, what: str) -> dict:
    """Decode a 200 body; anything but a JSON object means the source is unusable."""
    try:
        payload = response.json()
    except ValueError as e:
        raise SourceUnavailable(f"Malformed {what}: {e}") from e
    if not isinstance(payload, dict):
        raise SourceUnavailable(f"Malformed {what}: expected a JSON object")
    return payload


class GoogleSheetsConnector:
    """Fetch ranges of a spreadsheet as lists of string cells."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        refresh_token: Optional[str],
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.timeout = timeout
        self.session = session or requests.Session()

        self.access_token: Optional[str] = None
        self._token_lock = threading.Lock()

    def _check_credentials(self):
        missing = []
        if not self.client_id:
            missing.append("GOOGLE_CLIENT_ID")
        if not self.client_secret:
            missing.append("GOOGLE_CLIENT_SECRET")
        if not self.refresh_token:
            missing.append("GOOGLE_REFRESH_TOKEN")
        if missing:
            raise SourceUnavailable(f"Missing Google credentials: {', '.join(missing)}")

    def _refresh_access_token(self):
        """Get a new access token using the refresh token."""
        self._check_credentials()
        try:
            response = self.session.post(
                self.TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SourceUnavailable(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            raise SourceUnavailable(f"Failed to refresh token: {response.status_code} {response.text}")

        token = _json_body(response, "token response").get("access_token")
        if not token:
            raise SourceUnavailable("Token response did not include an access_token")
        self.access_token = token

    def _api_get(self, url: str, params: Optional[dict] = None) -> requests.Response:
        with self._token_lock:
            if not self.access_token:
                self._refresh_access_token()
            token = self.access_token

        try:
            response = self.session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            if response.status_code == 401:
                # Token expired, refresh and retry once
                with self._token_lock:
                    self._refresh_access_token()
                    token = self.access_token
                response = self.session.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise SourceUnavailable(f"Sheets request failed: {e}") from e

        return response

    def fetch_range(self, source_id: str, range_spec: str) -> list[list[str]]:
        """Return the rows of a range; trailing empty cells are omitted by the API."""
        if not source_id:
            raise SourceUnavailable("Spreadsheet id is not configured")

        url = f"{self.API_BASE}/{source_id}/values/{quote(range_spec, safe='')}"
        response = self._api_get(url, params={"valueRenderOption": "FORMATTED_VALUE"})

        if response.status_code == 400 and "Unable to parse range" in response.text:
            raise RangeNotFound(f"Range not found: {range_spec}")
        if response.status_code == 404:
            raise SourceUnavailable(f"Spreadsheet not found: {source_id}")
        if response.status_code != 200:
            raise SourceUnavailable(f"Sheets API error: {response.status_code} {response.text[:200]}")

        rows = _json_body(response, "values response").get("values", [])
        if not isinstance(rows, list) or not all(isinstance(row, list) for row in rows):
            raise SourceUnavailable(f"Unexpected values payload for {range_spec}")
        logger.info("[Sheets] %s!%s -> %d rows", source_id, range_spec, len(rows))
        return [[str(cell) for cell in row] for row in rows]

    def list_sheets(self, source_id: str) -> list[str]:
        """Sheet titles of a spreadsheet (connection check)."""
        response = self._api_get(
            f"{self.API_BASE}/{source_id}",
            params={"fields": "sheets.properties.title"},
        )
        if response.status_code != 200:
            raise SourceUnavailable(f"Sheets API error: {response.status_code} {response.text[:200]}")
        return [
            sheet.get("properties", {}).get("title", "Unknown")
            for sheet in _json_body(response, "spreadsheet response").get("sheets", [])
        ]
