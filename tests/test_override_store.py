import json

from common.override_store import MISSING, OverrideStore, road_name
from common.persistence import MemoryPersistence

BASE_LAT, BASE_LON = 25.0330, 121.5654
# 0.001 deg of latitude ~ 111 m


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_store(persistence=None, clock=None):
    return OverrideStore(persistence or MemoryPersistence(), clock=clock or FakeClock())


def test_road_name_is_last_token():
    assert road_name("Daan SongrenRd") == "SongrenRd"
    assert road_name("  ") == ""
    assert road_name("") == ""


def test_write_within_200m_merges_and_moves_to_front():
    clock = FakeClock()
    store = make_store(clock=clock)
    store.upsert(BASE_LAT, BASE_LON, 50)
    clock.advance(1)
    store.upsert(BASE_LAT + 0.02, BASE_LON, 70)
    assert store.records()[0].limit == 70

    clock.advance(1)
    store.upsert(BASE_LAT + 0.001, BASE_LON, 40)

    assert len(store) == 2
    first = store.records()[0]
    assert first.limit == 40
    assert first.latitude == BASE_LAT + 0.001
    assert first.last_updated == clock.now


def test_write_within_200m_merges_regardless_of_address():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50, "Daan SongrenRd")
    store.upsert(BASE_LAT + 0.001, BASE_LON, 50, "Xinyi KeelungRd")
    assert len(store) == 1
    assert store.records()[0].address == "Xinyi KeelungRd"


def test_same_road_within_1km_merges():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50, "Daan SongrenRd")
    # ~555 m further along
    store.upsert(BASE_LAT + 0.005, BASE_LON, 60, "Xinyi SongrenRd")
    assert len(store) == 1
    assert store.records()[0].limit == 60


def test_different_road_within_1km_is_a_new_location():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50, "Daan SongrenRd")
    store.upsert(BASE_LAT + 0.005, BASE_LON, 60, "Xinyi KeelungRd")
    assert len(store) == 2


def test_empty_address_never_merges_by_road():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50, "")
    store.upsert(BASE_LAT + 0.005, BASE_LON, 60, "")
    assert len(store) == 2


def test_same_road_beyond_1km_is_a_new_location():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50, "Daan SongrenRd")
    store.upsert(BASE_LAT + 0.01, BASE_LON, 60, "Daan SongrenRd")
    assert len(store) == 2
    assert store.records()[0].limit == 60


def test_first_match_in_store_order_wins_over_closest():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 50)
    store.upsert(BASE_LAT + 0.003, BASE_LON, 70)
    # ~144 m from the older record, ~189 m from the newer (first) one
    store.upsert(BASE_LAT + 0.0013, BASE_LON, 30)

    records = store.records()
    assert len(records) == 2
    assert records[0].limit == 30
    assert records[1].latitude == BASE_LAT
    assert records[1].limit == 50


def test_omitted_limit_keeps_existing_value():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 60)
    store.upsert(BASE_LAT, BASE_LON, address="Daan SongrenRd")
    assert store.records()[0].limit == 60
    assert store.records()[0].address == "Daan SongrenRd"

    store.upsert(BASE_LAT, BASE_LON, None)
    assert store.records()[0].limit is None


def test_new_record_without_limit_is_marked_unknown():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON)
    assert store.lookup(BASE_LAT, BASE_LON) is None


def test_store_never_exceeds_capacity_and_evicts_oldest():
    store = make_store()
    for i in range(105):
        store.upsert(BASE_LAT + i * 0.01, BASE_LON, 50 + i)
        assert len(store) <= OverrideStore.MAX_RECORDS

    assert len(store) == 100
    assert store.records()[0].limit == 50 + 104
    assert store.records()[-1].limit == 50 + 5
    for i in range(5):
        assert store.lookup(BASE_LAT + i * 0.01, BASE_LON) is MISSING


def test_lookup_at_written_coordinates_returns_limit():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 40)
    assert store.lookup(BASE_LAT, BASE_LON) == 40
    assert store.lookup(BASE_LAT + 0.0004, BASE_LON - 0.0004) == 40


def test_lookup_outside_box_finds_nothing():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, 40)
    assert store.lookup(BASE_LAT + 0.001, BASE_LON) is MISSING
    assert store.lookup(BASE_LAT, BASE_LON + 0.001) is MISSING
    assert not store.has_limit(BASE_LAT + 0.001, BASE_LON)


def test_marked_unknown_is_distinct_from_no_record():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, None)
    assert store.lookup(BASE_LAT, BASE_LON) is None
    assert not store.has_limit(BASE_LAT, BASE_LON)


def test_records_survive_reload():
    persistence = MemoryPersistence()
    store = make_store(persistence)
    store.upsert(BASE_LAT, BASE_LON, 40, "Daan SongrenRd")
    store.upsert(BASE_LAT + 0.02, BASE_LON, None)

    reloaded = make_store(persistence)
    assert [r.limit for r in reloaded.records()] == [None, 40]
    assert reloaded.records()[1].address == "Daan SongrenRd"


def test_corrupt_collection_loads_empty_and_heals_on_write():
    persistence = MemoryPersistence({"osm_reports": "{not json"})
    store = make_store(persistence)
    assert len(store) == 0

    store.upsert(BASE_LAT, BASE_LON, 40)
    assert len(json.loads(persistence.raw("osm_reports"))) == 1


def test_non_list_collection_loads_empty():
    store = make_store(MemoryPersistence({"osm_reports": json.dumps({"lat": 1})}))
    assert len(store) == 0


def test_malformed_entries_are_dropped():
    raw = json.dumps([
        {"lat": BASE_LAT, "lon": BASE_LON, "limit": 40, "address": "", "date": 1},
        {"lat": "?", "lon": BASE_LON},
        17,
    ])
    store = make_store(MemoryPersistence({"osm_reports": raw}))
    assert len(store) == 1
    assert store.lookup(BASE_LAT, BASE_LON) == 40


def test_set_limit_keeps_position():
    store = make_store()
    store.upsert(BASE_LAT, BASE_LON, None)
    store.upsert(BASE_LAT + 0.02, BASE_LON, 70)
    store.set_limit(1, 30)
    assert [r.limit for r in store.records()] == [70, 30]


def test_remove_and_clear_all():
    persistence = MemoryPersistence()
    store = make_store(persistence)
    store.upsert(BASE_LAT, BASE_LON, 40)
    store.upsert(BASE_LAT + 0.02, BASE_LON, 70)

    removed = store.remove(0)
    assert removed.limit == 70
    assert len(make_store(persistence)) == 1

    store.clear_all()
    assert len(store) == 0
    assert len(make_store(persistence)) == 0


def test_records_with_locale_date_strings_are_kept():
    raw = json.dumps([
        {"lat": BASE_LAT, "lon": BASE_LON, "limit": 40, "address": "大安區 安民街", "date": "2024/3/5 下午2:14:07"},
    ], ensure_ascii=False)
    store = make_store(MemoryPersistence({"osm_reports": raw}))

    assert len(store) == 1
    assert store.lookup(BASE_LAT, BASE_LON) == 40
    assert store.records()[0].last_updated == 0.0
