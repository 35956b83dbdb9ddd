# backend/mch_tracker/derived.py
"""
Policy scenarios and regional resource allocations derived from the patient
collections the first time patients exist.
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .db import utcnow
from .risk_engine import is_high_risk
from .schemas import MaternalPatient, PediatricPatient, PolicyScenario, ResourceAllocation
from .store import Kind, RecordStore

log = logging.getLogger("uvicorn.error")

POLICY_CATALOGUE = (
    {
        "scenario_id": "PS001",
        "name": "Enhanced Prenatal Screening",
        "description": "Implement comprehensive risk screening at every prenatal visit using AI-powered assessment tools",
        "maternal_mortality_change": -15,
        "infant_mortality_change": -12,
        "cost_increase": 8,
        "implementation_time": "6-9 months",
    },
    {
        "scenario_id": "PS002",
        "name": "Mobile Health Clinics",
        "description": "Deploy mobile health units to underserved areas for increased access to prenatal and postnatal care",
        "maternal_mortality_change": -22,
        "infant_mortality_change": -18,
        "cost_increase": 15,
        "implementation_time": "12-18 months",
    },
    {
        "scenario_id": "PS003",
        "name": "Community Health Worker Program",
        "description": "Train and deploy community health workers for home visits and early intervention",
        "maternal_mortality_change": -18,
        "infant_mortality_change": -20,
        "cost_increase": 12,
        "implementation_time": "9-12 months",
    },
)

DEFAULT_REGIONS = (
    ("North District", 45, 32, 78),
    ("South District", 38, 28, 85),
    ("East District", 52, 38, 72),
    ("West District", 41, 30, 80),
    ("Central District", 48, 35, 88),
)

NICU_BEDS_MIN, NICU_BEDS_MAX = 20, 80
OBGYN_STAFF_MIN, OBGYN_STAFF_MAX = 15, 60
VACCINE_STOCK_MIN, VACCINE_STOCK_MAX = 60, 95


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def high_risk_percentage(patients: Iterable) -> float:
    patients = list(patients)
    if not patients:
        return 0.0
    high = sum(1 for p in patients if is_high_risk(p.risk_level))
    return high / len(patients) * 100


def impact_factor(high_risk_pct: float) -> float:
    if high_risk_pct > 40:
        return 1.2
    if high_risk_pct > 20:
        return 1.0
    return 0.8


def scaled_scenarios(factor: float) -> List[PolicyScenario]:
    scenarios = []
    for base in POLICY_CATALOGUE:
        scenarios.append(PolicyScenario(**{
            **base,
            "maternal_mortality_change": round_half_up(base["maternal_mortality_change"] * factor),
            "infant_mortality_change": round_half_up(base["infant_mortality_change"] * factor),
        }))
    return scenarios


@dataclass
class RegionTally:
    maternal: int = 0
    pediatric: int = 0
    high_risk: int = 0

    @property
    def total(self) -> int:
        return self.maternal + self.pediatric

    @property
    def risk_ratio(self) -> float:
        return self.high_risk / self.total if self.total else 0.0


def region_code(natural_id: str) -> str:
    return natural_id[:3].upper()


def group_by_region(maternal: List[MaternalPatient], pediatric: List[PediatricPatient]) -> Dict[str, RegionTally]:
    groups: Dict[str, RegionTally] = {}
    for p in maternal:
        tally = groups.setdefault(region_code(p.patient_id), RegionTally())
        tally.maternal += 1
        tally.high_risk += is_high_risk(p.risk_level)
    for p in pediatric:
        tally = groups.setdefault(region_code(p.child_id), RegionTally())
        tally.pediatric += 1
        tally.high_risk += is_high_risk(p.risk_level)
    return groups


def allocation_for_region(total: int, risk_ratio: float) -> Dict[str, int]:
    nicu_beds = max(NICU_BEDS_MIN, round_half_up(total * 8 * (1 + risk_ratio)))
    obgyn_staff = max(OBGYN_STAFF_MIN, round_half_up(total * 6 * (1 + risk_ratio)))
    vaccine_stock = max(VACCINE_STOCK_MIN, round_half_up(75 + total * 2 * (1 + risk_ratio * 0.5)))
    return {
        "nicu_beds": min(nicu_beds, NICU_BEDS_MAX),
        "obgyn_staff": min(obgyn_staff, OBGYN_STAFF_MAX),
        "vaccine_stock": min(vaccine_stock, VACCINE_STOCK_MAX),
    }


def plan_resource_allocations(groups: Dict[str, RegionTally], now: Optional[datetime] = None) -> List[ResourceAllocation]:
    now = now or utcnow()
    if not groups:
        return [
            ResourceAllocation(region=name, nicu_beds=beds, obgyn_staff=staff, vaccine_stock=stock, last_updated=now)
            for name, beds, staff, stock in DEFAULT_REGIONS
        ]
    return [
        ResourceAllocation(region=f"{code} Region", last_updated=now, **allocation_for_region(t.total, t.risk_ratio))
        for code, t in groups.items()
    ]


class DerivedDataGenerator:
    """
    Each pass holds its lock across the emptiness check and the writes, so two
    uploads finishing together cannot both generate.
    """

    def __init__(self):
        self._policy_lock = threading.Lock()
        self._resource_lock = threading.Lock()

    def generate_policy_scenarios(self, store: RecordStore) -> List[PolicyScenario]:
        with self._policy_lock:
            if store.count(Kind.policies) > 0:
                return []
            patients = store.list(Kind.maternal) + store.list(Kind.pediatric)
            if not patients:
                return []

            pct = high_risk_percentage(patients)
            factor = impact_factor(pct)
            created = [store.upsert(Kind.policies, s.scenario_id, s) for s in scaled_scenarios(factor)]
            log.info(f"[derived] {len(created)} policy scenarios (high risk {pct:.1f}%, factor {factor})")
            return created

    def generate_resource_allocations(self, store: RecordStore) -> List[ResourceAllocation]:
        with self._resource_lock:
            if store.count(Kind.resources) > 0:
                return []
            maternal = store.list(Kind.maternal)
            pediatric = store.list(Kind.pediatric)
            if not maternal and not pediatric:
                return []

            plans = plan_resource_allocations(group_by_region(maternal, pediatric))
            created = [store.upsert(Kind.resources, r.region, r) for r in plans]
            log.info(f"[derived] {len(created)} resource allocations")
            return created

    def run(self, store: RecordStore) -> None:
        self.generate_policy_scenarios(store)
        self.generate_resource_allocations(store)
