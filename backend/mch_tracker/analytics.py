# backend/mch_tracker/analytics.py
import math
from collections import Counter
from datetime import timedelta
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from .advisor import Advisor, PopulationSummary
from .auth import current_user
from .db import utcnow
from .derived import round_half_up
from .deps import get_advisor, get_estimator, get_store
from .inference import ResilientRiskEstimator
from .risk_engine import MaternalRiskInput, PediatricRiskInput, is_high_risk
from .schemas import ApiModel, RiskAssessment, RiskLevel
from .store import Kind, RecordStore

router = APIRouter(prefix="/api/analytics", tags=["analytics"], dependencies=[Depends(current_user)])

TREND_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun")
BASE_ACCURACY = 0.82
MAX_ACCURACY_GAIN = 0.09
PENDING_ACTION_RATE = 0.2


# ---------- Schemas ----------
class DashboardStats(ApiModel):
    total_patients: int
    high_risk_patients: int
    alerts_today: int
    pending_actions: int


class TrendPoint(ApiModel):
    month: str
    high_risk: int
    medium_risk: int
    low_risk: int


class PerformancePoint(ApiModel):
    month: str
    accuracy: float
    precision: float
    recall: float


class RiskFactorStat(ApiModel):
    name: str
    count: int
    severity: float


class VitalSigns(ApiModel):
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    weight: Optional[float] = None


class PatientData(ApiModel):
    age: Optional[int] = None
    risk_factors: List[str] = []
    vital_signs: Optional[VitalSigns] = None
    birth_weight: Optional[float] = None
    gestation_weeks: Optional[int] = None


class PredictIn(ApiModel):
    type: Literal["maternal", "pediatric"] = "maternal"
    patient_data: PatientData = Field(default_factory=PatientData)


# ---------- Aggregates ----------
def all_patients(store: RecordStore) -> list:
    return store.list(Kind.maternal) + store.list(Kind.pediatric)


def dashboard_stats(patients: list, now=None) -> DashboardStats:
    now = now or utcnow()
    cutoff = now - timedelta(days=1)
    high = [p for p in patients if is_high_risk(p.risk_level)]
    alerts = [p for p in high if p.last_updated > cutoff]
    return DashboardStats(
        total_patients=len(patients),
        high_risk_patients=len(high),
        alerts_today=len(alerts),
        pending_actions=math.ceil(len(high) * PENDING_ACTION_RATE),
    )


def risk_trends(patients: list) -> List[TrendPoint]:
    high = sum(1 for p in patients if is_high_risk(p.risk_level))
    medium = sum(1 for p in patients if p.risk_level == RiskLevel.medium)
    low = sum(1 for p in patients if p.risk_level == RiskLevel.low)
    points = []
    for i, month in enumerate(TREND_MONTHS):
        factor = 0.7 + i * 0.05
        points.append(TrendPoint(
            month=month,
            high_risk=round_half_up(high * factor),
            medium_risk=round_half_up(medium * factor),
            low_risk=round_half_up(low * factor),
        ))
    return points


def model_performance(data_points: int) -> List[PerformancePoint]:
    gain = min(data_points / 100, MAX_ACCURACY_GAIN)
    points = []
    for i, month in enumerate(TREND_MONTHS):
        accuracy = BASE_ACCURACY + gain / len(TREND_MONTHS) * (i + 1)
        points.append(PerformancePoint(month=month, accuracy=accuracy, precision=accuracy - 0.02, recall=accuracy + 0.03))
    return points


def risk_factor_stats(patients: list, limit: int = 6) -> List[RiskFactorStat]:
    counts: Counter = Counter()
    severity_totals: Counter = Counter()
    for p in patients:
        for factor in p.risk_factors:
            counts[factor] += 1
            severity_totals[factor] += p.risk_score
    # most_common keeps first-seen order among ties
    return [
        RiskFactorStat(name=name, count=n, severity=round(severity_totals[name] / n / 20, 1))
        for name, n in counts.most_common(limit)
    ]


def population_summary(store: RecordStore, top: int = 5) -> PopulationSummary:
    maternal = store.list(Kind.maternal)
    pediatric = store.list(Kind.pediatric)
    patients = maternal + pediatric
    factors = Counter(f for p in patients for f in p.risk_factors)
    return PopulationSummary(
        maternal_count=len(maternal),
        pediatric_count=len(pediatric),
        high_risk_count=sum(1 for p in patients if is_high_risk(p.risk_level)),
        top_risk_factors=factors.most_common(top),
    )


# ---------- Routes ----------
@router.get("/dashboard", response_model=DashboardStats)
def dashboard(store: RecordStore = Depends(get_store)):
    return dashboard_stats(all_patients(store))


@router.get("/trends", response_model=List[TrendPoint])
def trends(store: RecordStore = Depends(get_store)):
    return risk_trends(all_patients(store))


@router.get("/insights", response_model=List[str])
def insights(store: RecordStore = Depends(get_store), advisor: Advisor = Depends(get_advisor)):
    return advisor.insights(population_summary(store))


@router.get("/model-performance", response_model=List[PerformancePoint])
def performance(store: RecordStore = Depends(get_store)):
    return model_performance(store.count(Kind.maternal) + store.count(Kind.pediatric))


@router.get("/risk-factors", response_model=List[RiskFactorStat])
def risk_factors(type: str = Query("maternal"), store: RecordStore = Depends(get_store)):
    kind = Kind.maternal if type == "maternal" else Kind.pediatric
    return risk_factor_stats(store.list(kind))


@router.post("/predict-risk", response_model=RiskAssessment)
def predict_risk(payload: PredictIn, estimator: ResilientRiskEstimator = Depends(get_estimator)):
    data = payload.patient_data
    if payload.type == "maternal":
        vitals = data.vital_signs or VitalSigns()
        patient = MaternalRiskInput(
            age=data.age,
            risk_factors=data.risk_factors,
            systolic=vitals.systolic,
            diastolic=vitals.diastolic,
            weight=vitals.weight,
        )
    else:
        patient = PediatricRiskInput(
            birth_weight=data.birth_weight,
            gestation_weeks=data.gestation_weeks,
            risk_factors=data.risk_factors,
        )
    return estimator.estimate(patient)
