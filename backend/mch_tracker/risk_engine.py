# backend/mch_tracker/risk_engine.py
"""
Deterministic risk scoring shared by the fallback path and by display code.

The point scores are not a clinical model; they give the dashboard a stable
ranking when the remote model is unavailable.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np

from .schemas import HIGH_RISK_LEVELS, RiskAssessment, RiskLevel

HIGH_PRIORITY_FACTORS = ("hypertension", "diabetes", "preterm", "hemorrhage")

MATERNAL_CONFIDENCE = 0.75
PEDIATRIC_CONFIDENCE = 0.70


@dataclass
class MaternalRiskInput:
    age: Optional[int]
    risk_factors: List[str] = field(default_factory=list)
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    weight: Optional[float] = None


@dataclass
class PediatricRiskInput:
    birth_weight: Optional[float] = None
    gestation_weeks: Optional[int] = None
    risk_factors: List[str] = field(default_factory=list)


RiskInput = Union[MaternalRiskInput, PediatricRiskInput]


def risk_level_for(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.critical
    if score >= 60:
        return RiskLevel.high
    if score >= 40:
        return RiskLevel.medium
    return RiskLevel.low


def is_high_risk(level) -> bool:
    return level in HIGH_RISK_LEVELS


def clamp_score(score: float) -> int:
    return int(np.clip(score, 0, 100))


def has_high_priority_factor(risk_factors: List[str]) -> bool:
    return any(hp in rf.lower() for rf in risk_factors for hp in HIGH_PRIORITY_FACTORS)


def maternal_score(p: MaternalRiskInput) -> int:
    score = 30
    if p.age:
        if p.age < 18 or p.age > 35:
            score += 15
        if p.age > 40:
            score += 25
    score += len(p.risk_factors) * 10
    if has_high_priority_factor(p.risk_factors):
        score += 20
    if p.systolic and p.systolic > 140:
        score += 20
    return clamp_score(score)


def pediatric_score(p: PediatricRiskInput) -> int:
    score = 25
    if p.birth_weight and p.birth_weight < 2.5:
        score += 25
    if p.gestation_weeks and p.gestation_weeks < 37:
        score += 20
    score += len(p.risk_factors) * 12
    return clamp_score(score)


def default_score(risk_factors: List[str]) -> int:
    """Stand-in when a model reply carries no usable score."""
    return clamp_score(max(len(risk_factors), 1) * 15 + 25)


class HeuristicRiskModel:
    name = "heuristic"

    def assess(self, patient: RiskInput) -> RiskAssessment:
        if isinstance(patient, MaternalRiskInput):
            return self._maternal(patient)
        return self._pediatric(patient)

    def _maternal(self, p: MaternalRiskInput) -> RiskAssessment:
        score = maternal_score(p)
        explanation = f"Risk assessment based on {len(p.risk_factors)} risk factors"
        if p.age:
            explanation += f", age {p.age}"
        if has_high_priority_factor(p.risk_factors):
            explanation += ", and high-priority risk factors detected"
        return RiskAssessment(
            risk_score=score,
            risk_level=risk_level_for(score),
            confidence=MATERNAL_CONFIDENCE,
            explanation=explanation + ".",
        )

    def _pediatric(self, p: PediatricRiskInput) -> RiskAssessment:
        score = pediatric_score(p)
        return RiskAssessment(
            risk_score=score,
            risk_level=risk_level_for(score),
            confidence=PEDIATRIC_CONFIDENCE,
            explanation=(
                f"Pediatric risk assessment based on {len(p.risk_factors)} risk factors, "
                "birth weight, and gestation period."
            ),
        )
