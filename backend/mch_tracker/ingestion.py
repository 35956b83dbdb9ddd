# backend/mch_tracker/ingestion.py
"""
CSV upload → validated rows → patient upserts → derived data.

Row problems never abort a batch: each row is validated into ``RowOk`` or
``RowError`` first, and only ``RowOk`` rows reach the store. Only an
unreadable file raises (``IngestionError``).
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from .db import utcnow
from .derived import DerivedDataGenerator
from .inference import ResilientRiskEstimator
from .risk_engine import MaternalRiskInput, PediatricRiskInput
from .schemas import MaternalPatient, PediatricPatient, RiskLevel, UploadSummary
from .store import Kind, RecordStore

log = logging.getLogger("uvicorn.error")

MAX_REPORTED_ERRORS = 10


class DatasetKind(str, Enum):
    maternal = "maternal"
    pediatric = "pediatric"

    @property
    def store_kind(self) -> Kind:
        return Kind(self.value)

    @property
    def key_column(self) -> str:
        return "patient_id" if self is DatasetKind.maternal else "child_id"

    @property
    def label(self) -> str:
        return "patient" if self is DatasetKind.maternal else "child"


REQUIRED_COLUMNS = {
    DatasetKind.maternal: ("patient_id", "name", "age", "risk_factors"),
    DatasetKind.pediatric: ("child_id", "name", "risk_factors"),
}


class IngestionError(Exception):
    pass


# ---------- Parsing ----------
def kind_from_filename(filename: Optional[str]) -> DatasetKind:
    if filename and "maternal" in filename.lower():
        return DatasetKind.maternal
    return DatasetKind.pediatric


def normalize_header(name: str) -> str:
    return str(name).strip().lower().replace(" ", "_")


def read_rows(path: Union[str, Path]) -> List[Dict[str, str]]:
    """
    Header row + data rows, every value a stripped string. Fields beyond the
    header width are dropped and short rows are padded with blanks, so a
    ragged row never shifts or rejects its neighbours. An empty file has no
    rows.
    """
    options = dict(dtype=str, keep_default_na=False, encoding="utf-8-sig", engine="python")
    try:
        width = len(pd.read_csv(path, nrows=0, **options).columns)
        df = pd.read_csv(
            path,
            index_col=False,
            skip_blank_lines=True,
            on_bad_lines=lambda fields: fields[:width],
            **options,
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise IngestionError(f"Could not parse CSV: {e}")

    df.columns = [normalize_header(c) for c in df.columns]
    df = df.fillna("")
    return [{k: str(v).strip() for k, v in rec.items()} for rec in df.to_dict(orient="records")]


def split_risk_factors(value: str) -> List[str]:
    return [f.strip() for f in value.split(",") if f.strip()]


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return None


def parse_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        num = float(value)
    except ValueError:
        return None
    return num if num == num else None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.tz_convert(None).to_pydatetime()


def parse_level(value: Optional[str]) -> Optional[RiskLevel]:
    try:
        return RiskLevel((value or "").lower())
    except ValueError:
        return None


# ---------- Validation ----------
@dataclass
class MaternalRow:
    patient_id: str
    name: str
    age: int
    risk_factors: List[str]
    risk_score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    weight: Optional[float] = None
    last_updated: Optional[datetime] = None

    def risk_input(self) -> MaternalRiskInput:
        return MaternalRiskInput(
            age=self.age,
            risk_factors=self.risk_factors,
            systolic=self.systolic,
            diastolic=self.diastolic,
            weight=self.weight,
        )


@dataclass
class PediatricRow:
    child_id: str
    name: str
    risk_factors: List[str]
    birth_weight: Optional[float] = None
    gestation_weeks: Optional[int] = None
    risk_score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    last_updated: Optional[datetime] = None

    def risk_input(self) -> PediatricRiskInput:
        return PediatricRiskInput(
            birth_weight=self.birth_weight,
            gestation_weeks=self.gestation_weeks,
            risk_factors=self.risk_factors,
        )


@dataclass
class RowOk:
    row: Union[MaternalRow, PediatricRow]

    @property
    def key(self) -> str:
        return getattr(self.row, "patient_id", None) or self.row.child_id


@dataclass
class RowError:
    key: str
    reason: str


RowResult = Union[RowOk, RowError]


def validate_row(raw: Dict[str, str], kind: DatasetKind) -> RowResult:
    key = raw.get(kind.key_column) or "unknown"
    if any(not raw.get(col) for col in REQUIRED_COLUMNS[kind]):
        return RowError(key, f"Missing required fields for {kind.label} {key}")

    common = dict(
        name=raw["name"],
        risk_factors=split_risk_factors(raw["risk_factors"]),
        risk_score=parse_int(raw.get("risk_score")),
        risk_level=parse_level(raw.get("risk_level")),
        last_updated=parse_timestamp(raw.get("last_updated")),
    )

    if kind is DatasetKind.maternal:
        age = parse_int(raw["age"])
        if age is None:
            return RowError(key, f"Invalid age '{raw['age']}' for {kind.label} {key}")
        return RowOk(MaternalRow(
            patient_id=raw["patient_id"],
            age=age,
            systolic=parse_int(raw.get("systolic_bp")),
            diastolic=parse_int(raw.get("diastolic_bp")),
            weight=parse_float(raw.get("weight")),
            **common,
        ))

    return RowOk(PediatricRow(
        child_id=raw["child_id"],
        birth_weight=parse_float(raw.get("birth_weight")),
        gestation_weeks=parse_int(raw.get("gestation_weeks")),
        **common,
    ))


# ---------- Pipeline ----------
@dataclass
class IngestResult:
    processed: int = 0
    success: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.processed - self.success

    def summary(self) -> UploadSummary:
        return UploadSummary(
            success=True,
            records_processed=self.processed,
            records_success=self.success,
            records_failed=self.failed,
            errors=self.errors[:MAX_REPORTED_ERRORS] or None,
        )


def resolve_risk(row: Union[MaternalRow, PediatricRow], estimator: ResilientRiskEstimator) -> Tuple[int, str]:
    # file-supplied score and level are trusted as a pair
    if row.risk_score is not None and row.risk_level is not None:
        return row.risk_score, row.risk_level.value
    assessment = estimator.estimate(row.risk_input())
    return assessment.risk_score, assessment.risk_level


def to_record(row: Union[MaternalRow, PediatricRow], estimator: ResilientRiskEstimator):
    risk_score, risk_level = resolve_risk(row, estimator)
    last_updated = row.last_updated or utcnow()
    if isinstance(row, MaternalRow):
        return MaternalPatient(
            patient_id=row.patient_id,
            name=row.name,
            age=row.age,
            risk_score=risk_score,
            risk_level=risk_level,
            risk_factors=row.risk_factors,
            last_updated=last_updated,
        )
    return PediatricPatient(
        child_id=row.child_id,
        name=row.name,
        birth_weight=row.birth_weight,
        gestation_weeks=row.gestation_weeks,
        risk_score=risk_score,
        risk_level=risk_level,
        risk_factors=row.risk_factors,
        last_updated=last_updated,
    )


def ingest_rows(
    rows: List[Dict[str, str]],
    kind: DatasetKind,
    store: RecordStore,
    estimator: ResilientRiskEstimator,
) -> IngestResult:
    result = IngestResult(processed=len(rows))
    for raw in rows:
        checked = validate_row(raw, kind)
        if isinstance(checked, RowError):
            result.errors.append(checked.reason)
            continue
        try:
            store.upsert(kind.store_kind, checked.key, to_record(checked.row, estimator))
            result.success += 1
        except Exception as e:
            log.warning(f"[upload] row {checked.key} rejected: {e}")
            result.errors.append(f"Error processing {kind.label} {checked.key}: {e}")
    return result


def process_upload(
    path: Union[str, Path],
    kind: DatasetKind,
    store: RecordStore,
    estimator: ResilientRiskEstimator,
    generator: DerivedDataGenerator,
) -> UploadSummary:
    """
    Ingest an uploaded file, then derive policies/resources. The file is
    removed afterwards whether or not parsing succeeded.
    """
    try:
        rows = read_rows(path)
        result = ingest_rows(rows, kind, store, estimator)
    finally:
        try:
            os.remove(path)
        except OSError as e:
            log.debug(f"[upload] could not remove {path}: {e}")

    log.info(f"[upload] processed {result.success}/{result.processed} {kind.value} records")

    try:
        generator.run(store)
    except Exception as e:
        log.warning(f"[upload] failed to generate policy/resource data: {e}")

    return result.summary()
