# backend/mch_tracker/digital_twins.py
from typing import List

from fastapi import APIRouter, Depends, Query

from .auth import current_user
from .deps import get_twins
from .twins import ComparisonPoint, Deviation, DeviationIn, TwinLog, VitalSigns, VitalSignsIn

router = APIRouter(prefix="/api/digital-twins", tags=["digital-twins"], dependencies=[Depends(current_user)])


@router.get("/deviations", response_model=List[Deviation])
def list_deviations(limit: int = Query(50, ge=0), twins: TwinLog = Depends(get_twins)):
    return twins.deviations(limit)


@router.post("/deviations", response_model=Deviation)
def record_deviation(payload: DeviationIn, twins: TwinLog = Depends(get_twins)):
    return twins.record_deviation(payload)


@router.get("/vital-signs/{patient_id}", response_model=List[VitalSigns])
def list_vital_signs(patient_id: str, days: int = Query(30, ge=0), twins: TwinLog = Depends(get_twins)):
    return twins.vitals_for(patient_id, days)


@router.post("/vital-signs", response_model=VitalSigns)
def record_vital_signs(payload: VitalSignsIn, twins: TwinLog = Depends(get_twins)):
    return twins.record_vitals(payload)


@router.get("/comparison/{patient_id}", response_model=List[ComparisonPoint])
def comparison(patient_id: str, days: int = Query(30, ge=0), twins: TwinLog = Depends(get_twins)):
    return twins.comparison(patient_id, days)
