import pytest

from mch_tracker.derived import DerivedDataGenerator
from mch_tracker.inference import ResilientRiskEstimator
from mch_tracker.ingestion import (
    DatasetKind,
    IngestionError,
    RowError,
    RowOk,
    kind_from_filename,
    process_upload,
    read_rows,
    split_risk_factors,
    validate_row,
)
from mch_tracker.risk_engine import HeuristicRiskModel
from mch_tracker.store import Kind


MATERNAL_CSV = """patient_id,name,age,risk_factors
NOR001,Ama Mensah,28,anemia
NOR002,Efua Boateng,41,"hypertension, anemia"
NOR003,,30,diabetes
"""


@pytest.fixture
def estimator():
    return ResilientRiskEstimator(None, HeuristicRiskModel())


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_kind_from_filename():
    assert kind_from_filename("Maternal_2024.csv") is DatasetKind.maternal
    assert kind_from_filename("children.csv") is DatasetKind.pediatric
    assert kind_from_filename(None) is DatasetKind.pediatric


def test_split_risk_factors_drops_blanks():
    assert split_risk_factors(" hypertension, ,anemia ,") == ["hypertension", "anemia"]


def test_read_rows_normalizes_headers(tmp_path):
    path = write(tmp_path, "m.csv", "\ufeffPatient ID,Name,Age,Risk Factors\nA1, Ama ,30,anemia\n")
    assert read_rows(path) == [{"patient_id": "A1", "name": "Ama", "age": "30", "risk_factors": "anemia"}]


def test_validate_row_missing_field():
    result = validate_row({"patient_id": "X9", "name": "", "age": "30", "risk_factors": "a"}, DatasetKind.maternal)
    assert result == RowError("X9", "Missing required fields for patient X9")


def test_validate_row_bad_age():
    result = validate_row({"patient_id": "X9", "name": "Ama", "age": "old", "risk_factors": "a"}, DatasetKind.maternal)
    assert isinstance(result, RowError)
    assert result.reason == "Invalid age 'old' for patient X9"


def test_validate_pediatric_row_optional_columns():
    result = validate_row(
        {"child_id": "C1", "name": "Kofi", "risk_factors": "jaundice", "birth_weight": "2.1", "gestation_weeks": "34"},
        DatasetKind.pediatric,
    )
    assert isinstance(result, RowOk)
    assert result.key == "C1"
    assert result.row.birth_weight == 2.1
    assert result.row.gestation_weeks == 34


def test_upload_counts_and_scores(tmp_path, store, estimator):
    path = write(tmp_path, "maternal.csv", MATERNAL_CSV)
    summary = process_upload(path, DatasetKind.maternal, store, estimator, DerivedDataGenerator())

    assert summary.records_processed == 3
    assert summary.records_success == 2
    assert summary.records_failed == 1
    assert summary.errors == ["Missing required fields for patient NOR003"]
    assert not path.exists()

    ama = store.get(Kind.maternal, "NOR001")
    assert ama.risk_factors == ["anemia"]
    assert ama.risk_score == 40
    assert ama.risk_level == "medium"
    # 30 + 15 + 25 + 2*10 + 20
    assert store.get(Kind.maternal, "NOR002").risk_score == 100


def test_upload_generates_derived_data(tmp_path, store, estimator):
    process_upload(write(tmp_path, "m.csv", MATERNAL_CSV), DatasetKind.maternal, store, estimator, DerivedDataGenerator())
    assert store.count(Kind.policies) == 3
    assert [r.region for r in store.list(Kind.resources)] == ["NOR Region"]


def test_csv_supplied_score_is_kept(tmp_path, store, estimator):
    text = "child_id,name,risk_factors,risk_score,risk_level\nC1,Kofi,jaundice,12,LOW\nC2,Yaw,jaundice,abc,high\n"
    process_upload(write(tmp_path, "p.csv", text), DatasetKind.pediatric, store, estimator, DerivedDataGenerator())
    assert store.get(Kind.pediatric, "C1").risk_score == 12
    # unusable score means the estimator decides
    assert store.get(Kind.pediatric, "C2").risk_score == 37


def test_reupload_overwrites(tmp_path, store, estimator):
    gen = DerivedDataGenerator()
    process_upload(write(tmp_path, "a.csv", MATERNAL_CSV), DatasetKind.maternal, store, estimator, gen)
    first_id = store.get(Kind.maternal, "NOR001").id
    process_upload(
        write(tmp_path, "b.csv", "patient_id,name,age,risk_factors\nNOR001,Ama Mensah,29,preterm labour\n"),
        DatasetKind.maternal, store, estimator, gen,
    )
    again = store.get(Kind.maternal, "NOR001")
    assert again.id == first_id
    assert again.age == 29
    assert store.count(Kind.maternal) == 2


def test_no_valid_rows_on_empty_store(tmp_path, store, estimator):
    text = "patient_id,name,age,risk_factors\nA1,,30,x\n"
    summary = process_upload(write(tmp_path, "m.csv", text), DatasetKind.maternal, store, estimator, DerivedDataGenerator())
    assert summary.records_success == 0
    assert store.count(Kind.policies) == 0
    assert store.count(Kind.resources) == 0


def test_errors_are_capped_at_ten(tmp_path, store, estimator):
    rows = "".join(f"P{i},,30,x\n" for i in range(15))
    summary = process_upload(
        write(tmp_path, "m.csv", "patient_id,name,age,risk_factors\n" + rows),
        DatasetKind.maternal, store, estimator, DerivedDataGenerator(),
    )
    assert summary.records_failed == 15
    assert len(summary.errors) == 10


def test_clean_upload_reports_no_errors(tmp_path, store, estimator):
    text = "patient_id,name,age,risk_factors\nA1,Ama,30,anemia\n"
    summary = process_upload(write(tmp_path, "m.csv", text), DatasetKind.maternal, store, estimator, DerivedDataGenerator())
    assert summary.errors is None


def test_read_rows_empty_file_has_no_rows(tmp_path):
    assert read_rows(write(tmp_path, "empty.csv", "")) == []


def test_read_rows_undecodable_bytes(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_bytes(b"patient_id,name,age,risk_factors\n\xff\xfe,\x80,30,x\n")
    with pytest.raises(IngestionError):
        read_rows(path)


def test_read_rows_drops_extra_fields_on_every_row(tmp_path):
    text = "child_id,name,risk_factors\nC001,Kofi,jaundice,sepsis\nC002,Yaw,anemia,sepsis\n"
    rows = read_rows(write(tmp_path, "p.csv", text))
    assert rows[0] == {"child_id": "C001", "name": "Kofi", "risk_factors": "jaundice"}
    assert [r["child_id"] for r in rows] == ["C001", "C002"]


def test_read_rows_pads_short_rows(tmp_path):
    rows = read_rows(write(tmp_path, "p.csv", "child_id,name,risk_factors\nC001,Kofi\n"))
    assert rows == [{"child_id": "C001", "name": "Kofi", "risk_factors": ""}]


def test_one_ragged_row_does_not_sink_the_batch(tmp_path, store, estimator):
    text = (
        "patient_id,name,age,risk_factors\n"
        "NOR001,Ama,28,anemia\n"
        "NOR002,Efua,41,hypertension,diabetes\n"
        "NOR003,Abena,30,anemia\n"
    )
    summary = process_upload(write(tmp_path, "m.csv", text), DatasetKind.maternal, store, estimator, DerivedDataGenerator())
    assert summary.records_processed == 3
    assert summary.records_success == 3
    assert [p.patient_id for p in store.list(Kind.maternal)] == ["NOR001", "NOR002", "NOR003"]
    assert store.get(Kind.maternal, "NOR002").risk_factors == ["hypertension"]


def test_extra_field_upload_keeps_natural_keys(tmp_path, store, estimator):
    text = "child_id,name,risk_factors\nC001,Kofi,jaundice,sepsis\nC002,Yaw,anemia,sepsis\n"
    process_upload(write(tmp_path, "p.csv", text), DatasetKind.pediatric, store, estimator, DerivedDataGenerator())
    assert store.get(Kind.pediatric, "C001").name == "Kofi"
    assert store.get(Kind.pediatric, "Kofi") is None


def test_empty_upload_is_an_empty_batch(tmp_path, store, estimator):
    summary = process_upload(write(tmp_path, "m.csv", ""), DatasetKind.maternal, store, estimator, DerivedDataGenerator())
    assert summary.success is True
    assert summary.records_processed == 0
    assert summary.errors is None
