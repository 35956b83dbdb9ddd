# backend/mch_tracker/schemas.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


HIGH_RISK_LEVELS = (RiskLevel.high, RiskLevel.critical)


class ApiModel(BaseModel):
    """camelCase on the wire and in snapshot files, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


# ---------- Stored records ----------
class UserRecord(ApiModel):
    id: Optional[str] = None
    email: str
    password: str
    name: str
    role: str = "user"
    created_at: datetime


class MaternalPatient(ApiModel):
    id: Optional[str] = None
    patient_id: str
    name: str
    age: int
    risk_score: int
    risk_level: RiskLevel
    risk_factors: List[str] = []
    last_updated: datetime


class PediatricPatient(ApiModel):
    id: Optional[str] = None
    child_id: str
    name: str
    birth_weight: Optional[float] = None
    gestation_weeks: Optional[int] = None
    risk_score: int
    risk_level: RiskLevel
    risk_factors: List[str] = []
    last_updated: datetime


class PolicyScenario(ApiModel):
    id: Optional[str] = None
    scenario_id: str
    name: str
    description: str = ""
    maternal_mortality_change: float
    infant_mortality_change: float
    cost_increase: float
    implementation_time: str = ""


class ResourceAllocation(ApiModel):
    id: Optional[str] = None
    region: str
    nicu_beds: int = Field(..., ge=0)
    obgyn_staff: int = Field(..., ge=0)
    vaccine_stock: int = Field(..., ge=0, le=100)
    last_updated: datetime


# ---------- Risk ----------
class RiskAssessment(ApiModel):
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0, le=1)
    explanation: str = ""


# ---------- Upload ----------
class UploadSummary(ApiModel):
    success: bool = True
    records_processed: int
    records_success: int
    records_failed: int
    errors: Optional[List[str]] = None


# ---------- Policy simulation ----------
class PolicySimulation(ApiModel):
    maternal_mortality_change: float
    infant_mortality_change: float
    cost_increase: float
    confidence: float
