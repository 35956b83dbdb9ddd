# backend/mch_tracker/resources.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from .auth import current_user
from .db import utcnow
from .derived import round_half_up
from .deps import get_store
from .risk_engine import is_high_risk
from .schemas import ApiModel, ResourceAllocation
from .store import Kind, RecordStore

router = APIRouter(prefix="/api/resources", tags=["resources"], dependencies=[Depends(current_user)])

FORECAST_MONTHS = ("Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
FORECAST_METRICS = {
    "nicuBeds": "nicu_beds",
    "obgynStaff": "obgyn_staff",
    "vaccineStock": "vaccine_stock",
}


class ResourceIn(ApiModel):
    region: str = Field(..., min_length=1)
    nicu_beds: int = Field(..., ge=0)
    obgyn_staff: int = Field(..., ge=0)
    vaccine_stock: int = Field(..., ge=0, le=100)


class ForecastPoint(ApiModel):
    month: str
    current: float
    forecast: int


def forecast_series(allocations: List[ResourceAllocation], metric: str, high_risk_count: int) -> List[ForecastPoint]:
    # unknown metrics fall back to vaccine stock
    attr = FORECAST_METRICS.get(metric, "vaccine_stock")
    growth = 0.1 + high_risk_count * 0.01
    average = sum(getattr(a, attr) for a in allocations) / (len(allocations) or 1)
    return [
        ForecastPoint(month=m, current=average, forecast=round_half_up(average * (1 + growth * (i + 1))))
        for i, m in enumerate(FORECAST_MONTHS)
    ]


@router.get("", response_model=List[ResourceAllocation])
def list_resources(store: RecordStore = Depends(get_store)):
    return store.list(Kind.resources)


@router.get("/forecast/{metric}", response_model=List[ForecastPoint])
def forecast(metric: str, store: RecordStore = Depends(get_store)):
    patients = store.list(Kind.maternal) + store.list(Kind.pediatric)
    high_risk = sum(1 for p in patients if is_high_risk(p.risk_level))
    return forecast_series(store.list(Kind.resources), metric, high_risk)


@router.get("/{region}", response_model=ResourceAllocation)
def get_resource(region: str, store: RecordStore = Depends(get_store)):
    resource = store.get(Kind.resources, region)
    if not resource:
        raise HTTPException(status_code=404, detail="Region not found")
    return resource


@router.post("", response_model=ResourceAllocation)
def upsert_resource(payload: ResourceIn, store: RecordStore = Depends(get_store)):
    record = ResourceAllocation(**payload.model_dump(), last_updated=utcnow())
    return store.upsert(Kind.resources, payload.region, record)


@router.delete("/{region}")
def delete_resource(region: str, store: RecordStore = Depends(get_store)):
    store.delete(Kind.resources, region)
    return {"success": True}
