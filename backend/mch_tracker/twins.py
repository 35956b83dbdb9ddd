# backend/mch_tracker/twins.py
"""
Digital-twin feeds: vital-sign readings and recorded deviations per patient,
kept in process memory for the lifetime of the app (not snapshotted).
"""
import threading
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import Field

from .db import utcnow
from .schemas import ApiModel

BASELINE_SYSTOLIC = 120.0
PREDICTED_DAILY_DROP = 0.5


# ---------- Schemas ----------
class VitalSignsIn(ApiModel):
    patient_id: str = Field(..., min_length=1)
    patient_type: Optional[str] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    heart_rate: Optional[float] = None
    blood_glucose: Optional[float] = None
    weight: Optional[float] = None
    temperature: Optional[float] = None


class VitalSigns(VitalSignsIn):
    id: str
    timestamp: datetime


class DeviationIn(ApiModel):
    patient_id: str = Field(..., min_length=1)
    patient_type: Optional[str] = None
    parameter: str
    expected_value: Optional[float] = None
    actual_value: Optional[float] = None
    deviation_percent: Optional[float] = None


class Deviation(DeviationIn):
    id: str
    timestamp: datetime


class ComparisonPoint(ApiModel):
    day: int
    predicted: float
    actual: float
    timestamp: datetime


# ---------- In-memory log ----------
class TwinLog:
    def __init__(self):
        self._vitals: List[VitalSigns] = []
        self._deviations: List[Deviation] = []
        self._lock = threading.Lock()

    def record_vitals(self, payload: VitalSignsIn, now: Optional[datetime] = None) -> VitalSigns:
        vital = VitalSigns(**payload.model_dump(), id=f"vital-{uuid.uuid4().hex}", timestamp=now or utcnow())
        with self._lock:
            self._vitals.append(vital)
        return vital

    def record_deviation(self, payload: DeviationIn, now: Optional[datetime] = None) -> Deviation:
        deviation = Deviation(**payload.model_dump(), id=f"deviation-{uuid.uuid4().hex}", timestamp=now or utcnow())
        with self._lock:
            self._deviations.append(deviation)
        return deviation

    def vitals_for(self, patient_id: str, days: int, now: Optional[datetime] = None) -> List[VitalSigns]:
        """Readings newer than ``days`` days, newest first."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        with self._lock:
            recent = [v for v in self._vitals if v.patient_id == patient_id and v.timestamp > cutoff]
        return sorted(recent, key=lambda v: v.timestamp, reverse=True)

    def deviations(self, limit: int) -> List[Deviation]:
        with self._lock:
            return self._deviations[:limit]

    def comparison(self, patient_id: str, days: int, now: Optional[datetime] = None) -> List[ComparisonPoint]:
        return [
            ComparisonPoint(
                day=i + 1,
                predicted=BASELINE_SYSTOLIC - i * PREDICTED_DAILY_DROP,
                actual=v.systolic if v.systolic is not None else BASELINE_SYSTOLIC,
                timestamp=v.timestamp,
            )
            for i, v in enumerate(self.vitals_for(patient_id, days, now))
        ]

