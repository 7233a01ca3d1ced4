#
# notes_client.py
# files map notes on openstreetmap.org
#
from __future__ import annotations
import logging
from typing import Optional

import requests

from common.errors import PublishError

logger = logging.getLogger(__name__)

NOTES_API_URL = "https://api.openstreetmap.org/api/0.6/notes.json"
NOTE_URL = "https://www.openstreetmap.org/note/{note_id}"


def note_url(note_id: int) -> str:
    return NOTE_URL.format(note_id=note_id)


class NotesClient:
    def __init__(self, api_url: str = NOTES_API_URL, timeout_s: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def create_note(self, lat: float, lon: float, text: str) -> int:
        """File an anonymous note and return its id."""
        try:
            response = self.session.post(
                self.api_url,
                params={"lat": lat, "lon": lon, "text": text},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            return int(response.json()["properties"]["id"])
        except requests.RequestException as e:
            raise PublishError(f"Note upload failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise PublishError(f"Unexpected note response: {e}") from e
