import json
import logging
from datetime import datetime

from mch_tracker.schemas import MaternalPatient, ResourceAllocation
from mch_tracker.store import Kind, RecordStore


def maternal(pid="NOR001", score=30, level="low"):
    return MaternalPatient(
        patient_id=pid,
        name="Ama",
        age=28,
        risk_score=score,
        risk_level=level,
        risk_factors=["anemia"],
        last_updated=datetime(2024, 5, 1, 12, 0),
    )


def test_upsert_then_get(store):
    stored = store.upsert(Kind.maternal, "NOR001", maternal())
    assert stored.id
    got = store.get(Kind.maternal, "NOR001")
    assert got.name == "Ama"
    assert got.risk_factors == ["anemia"]
    assert store.get(Kind.maternal, "missing") is None


def test_upsert_replaces_in_place(store):
    first = store.upsert(Kind.maternal, "NOR001", maternal())
    second = store.upsert(Kind.maternal, "NOR001", maternal(score=70, level="high"))
    assert second.id == first.id
    assert store.count(Kind.maternal) == 1
    assert store.get(Kind.maternal, "NOR001").risk_level == "high"


def test_list_keeps_insertion_order(store):
    for pid in ("C", "A", "B"):
        store.upsert(Kind.maternal, pid, maternal(pid))
    store.upsert(Kind.maternal, "A", maternal("A", score=90, level="critical"))
    assert [p.patient_id for p in store.list(Kind.maternal)] == ["C", "A", "B"]


def test_key_argument_wins_over_record_field(store):
    store.upsert(Kind.maternal, "SOU002", maternal("NOR001"))
    assert store.get(Kind.maternal, "SOU002") is not None
    assert store.get(Kind.maternal, "NOR001") is None


def test_upsert_accepts_camel_case_mapping(store):
    store.upsert(Kind.resources, "North", {
        "region": "North", "nicuBeds": 10, "obgynStaff": 5, "vaccineStock": 80,
        "lastUpdated": "2024-05-01T00:00:00",
    })
    assert store.get(Kind.resources, "North").nicu_beds == 10


def test_delete(store):
    store.upsert(Kind.maternal, "NOR001", maternal())
    assert store.delete(Kind.maternal, "NOR001") is True
    assert store.delete(Kind.maternal, "NOR001") is False
    assert store.count(Kind.maternal) == 0


def test_snapshot_written_in_camel_case(store, tmp_path):
    store.upsert(Kind.maternal, "NOR001", maternal())
    data = json.loads((tmp_path / "data" / "maternal.json").read_text())
    assert data[0]["patientId"] == "NOR001"
    assert data[0]["riskLevel"] == "low"
    assert json.loads((tmp_path / "data" / "policies.json").read_text()) == []


def test_load_round_trip_keeps_ids(store, tmp_path):
    stored = store.upsert(Kind.maternal, "NOR001", maternal())
    store.close()

    reopened = RecordStore(tmp_path / "data")
    assert reopened.load()[Kind.maternal] == 1
    assert reopened.get(Kind.maternal, "NOR001").id == stored.id


def test_malformed_file_only_skips_that_collection(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "maternal.json").write_text("{not json")
    (data_dir / "resources.json").write_text(json.dumps([
        {"region": "West", "nicuBeds": 41, "obgynStaff": 30, "vaccineStock": 80, "lastUpdated": "2024-05-01T00:00:00"},
    ]))

    s = RecordStore(data_dir, persist=False)
    loaded = s.load()
    assert Kind.maternal not in loaded
    assert s.count(Kind.maternal) == 0
    assert s.count(Kind.resources) == 1


def test_non_persistent_store_writes_nothing(tmp_path):
    s = RecordStore(tmp_path / "data", persist=False)
    s.upsert(Kind.resources, "East", ResourceAllocation(
        region="East", nicu_beds=1, obgyn_staff=1, vaccine_stock=70, last_updated=datetime(2024, 1, 1),
    ))
    assert not (tmp_path / "data").exists()


def test_find_user_by_email(store):
    store.upsert(Kind.users, "u-1", {
        "email": "nurse@clinic.org", "password": "hash", "name": "Nurse", "role": "user",
        "createdAt": "2024-01-01T00:00:00",
    })
    user = store.find_user_by_email("nurse@clinic.org")
    assert user.id == "u-1"
    assert store.find_user_by_email("nobody@clinic.org") is None


def test_snapshot_failure_is_logged_and_store_stays_usable(tmp_path, caplog):
    blocked = tmp_path / "not-a-dir"
    blocked.write_text("occupied")
    s = RecordStore(blocked)

    with caplog.at_level(logging.ERROR, logger="uvicorn.error"):
        s.upsert(Kind.maternal, "NOR001", maternal())

    assert s.get(Kind.maternal, "NOR001").name == "Ama"
    assert any("saving snapshot" in r.getMessage() for r in caplog.records)
    assert blocked.read_text() == "occupied"
