#
# corrections.py
# publishes remembered limits as map notes so they can be fixed upstream
#
from __future__ import annotations
import logging
import time
from typing import Callable, List

from common.models import UploadRecord
from common.notes_client import NotesClient, note_url
from common.override_store import OverrideStore
from common.persistence import Persistence, load_records

logger = logging.getLogger(__name__)

UPLOADS_KEY = "osm_uploaded_history"


class UploadHistory:
    MAX_RECORDS = 50

    def __init__(self, persistence: Persistence):
        self.persistence = persistence
        self._records: List[UploadRecord] = load_records(
            persistence, UPLOADS_KEY, UploadRecord.from_dict
        )[:self.MAX_RECORDS]

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[UploadRecord]:
        return list(self._records)

    def add(self, record: UploadRecord):
        self._records.insert(0, record)
        del self._records[self.MAX_RECORDS:]
        self.persistence.save(UPLOADS_KEY, [r.to_dict() for r in self._records])

    def clear(self):
        self._records.clear()
        self.persistence.save(UPLOADS_KEY, [])


class CorrectionPublisher:
    NOTE_TEMPLATE = "User reported maxspeed: {limit} km/h (via SpeedTrap)"

    def __init__(self, store: OverrideStore, uploads: UploadHistory, notes: NotesClient,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.uploads = uploads
        self.notes = notes
        self.clock = clock

    def publish(self, index: int) -> UploadRecord:
        """
        File the override at ``index`` as a note. On success the override
        moves from the store to the upload history; on PublishError the
        store is left untouched.
        """
        override = self.store.get(index)
        if not override.limit:
            raise ValueError("Set a speed limit before publishing this location")

        text = self.NOTE_TEMPLATE.format(limit=override.limit)
        note_id = self.notes.create_note(override.latitude, override.longitude, text)

        record = UploadRecord(override=override, note_id=note_id, uploaded_at=self.clock())
        self.uploads.add(record)
        self.store.remove(index)
        logger.info(f"[STORE] Published override as note #{note_id}: {note_url(note_id)}")
        return record
