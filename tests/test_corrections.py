import pytest
import requests

from common.corrections import CorrectionPublisher, UploadHistory
from common.errors import PublishError
from common.models import LimitOverride, UploadRecord
from common.notes_client import NotesClient, note_url
from common.override_store import OverrideStore
from common.persistence import MemoryPersistence

LAT, LON = 25.0330, 121.5654


class FakeNotes:
    def __init__(self, note_id=1234, error=None):
        self.note_id = note_id
        self.error = error
        self.calls = []

    def create_note(self, lat, lon, text):
        self.calls.append((lat, lon, text))
        if self.error:
            raise self.error
        return self.note_id


class FakeResponse:
    def __init__(self, data=None, status_code=200):
        self.data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        return self.data


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_publisher(notes):
    persistence = MemoryPersistence()
    store = OverrideStore(persistence)
    uploads = UploadHistory(persistence)
    return CorrectionPublisher(store, uploads, notes, clock=lambda: 500.0), store, uploads


def test_publish_moves_override_to_upload_history():
    notes = FakeNotes(1234)
    publisher, store, uploads = make_publisher(notes)
    store.upsert(LAT, LON, 60, "Daan SongrenRd")

    record = publisher.publish(0)

    assert record.note_id == 1234
    assert record.uploaded_at == 500.0
    assert notes.calls == [(LAT, LON, "User reported maxspeed: 60 km/h (via SpeedTrap)")]
    assert len(store) == 0
    assert uploads.records()[0].override.address == "Daan SongrenRd"


def test_publish_requires_a_limit():
    notes = FakeNotes()
    publisher, store, _ = make_publisher(notes)
    store.upsert(LAT, LON, None)

    with pytest.raises(ValueError):
        publisher.publish(0)
    assert notes.calls == []


def test_failed_publish_leaves_store_untouched():
    publisher, store, uploads = make_publisher(FakeNotes(error=PublishError("offline")))
    store.upsert(LAT, LON, 60)

    with pytest.raises(PublishError):
        publisher.publish(0)
    assert len(store) == 1
    assert len(uploads) == 0


def test_upload_history_is_capped_and_reloads():
    persistence = MemoryPersistence()
    uploads = UploadHistory(persistence)
    for i in range(55):
        uploads.add(UploadRecord(LimitOverride(LAT, LON, 50), note_id=i, uploaded_at=i))

    assert len(uploads) == 50
    reloaded = UploadHistory(persistence)
    assert reloaded.records()[0].note_id == 54
    assert reloaded.records()[-1].note_id == 5

    reloaded.clear()
    assert len(UploadHistory(persistence)) == 0


def test_notes_client_returns_note_id():
    session = FakeSession(FakeResponse({"type": "Feature", "properties": {"id": 42}}))
    client = NotesClient(session=session)

    assert client.create_note(LAT, LON, "User reported maxspeed: 60 km/h") == 42
    url, params = session.calls[0]
    assert url.endswith("/api/0.6/notes.json")
    assert params == {"lat": LAT, "lon": LON, "text": "User reported maxspeed: 60 km/h"}
    assert note_url(42) == "https://www.openstreetmap.org/note/42"


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=400),
    FakeResponse({"properties": {}}),
    requests.ConnectionError("offline"),
])
def test_notes_client_failures_raise_publish_error(response):
    client = NotesClient(session=FakeSession(response))
    with pytest.raises(PublishError):
        client.create_note(LAT, LON, "text")
