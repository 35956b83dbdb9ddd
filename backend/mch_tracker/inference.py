# backend/mch_tracker/inference.py
"""
Risk inference through a hosted text-generation model.

``ResilientRiskEstimator`` is what the rest of the app calls. It tries the
remote model while the circuit is closed and answers with the heuristic model
on any error, timeout or unusable reply, so callers never see a failure.
"""
import json
import logging
import re
import threading
import time
from typing import Any, Dict, Optional, Protocol

from huggingface_hub import InferenceClient

from .config import Settings
from .risk_engine import (
    HeuristicRiskModel,
    MaternalRiskInput,
    PediatricRiskInput,
    RiskInput,
    clamp_score,
    default_score,
    risk_level_for,
)
from .schemas import RiskAssessment

log = logging.getLogger("uvicorn.error")

DEFAULT_CONFIDENCE = 0.75
_JSON_OBJECT = re.compile(r"\{[^{}]*\}")


class InferenceError(RuntimeError):
    pass


class TextGenerator(Protocol):
    def generate(self, prompt: str, *, max_new_tokens: int, temperature: float, top_p: float) -> str:
        ...


class RiskModel(Protocol):
    name: str

    def assess(self, patient: RiskInput) -> RiskAssessment:
        ...


class HuggingFaceTextGenerator:
    def __init__(self, api_key: str, model: str, timeout: float):
        self.model = model
        self.client = InferenceClient(model=model, token=api_key, timeout=timeout)

    def generate(self, prompt: str, *, max_new_tokens: int, temperature: float, top_p: float) -> str:
        return self.client.text_generation(
            prompt,
            max_new_tokens=max_new_tokens,
            temperature=temperature,
            top_p=top_p,
            return_full_text=False,
        )


def extract_json_object(text: str) -> Dict[str, Any]:
    """First flat ``{...}`` object in a free-text reply."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise InferenceError("no JSON object in model reply")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InferenceError(f"model reply is not valid JSON: {e}")
    if not isinstance(parsed, dict):
        raise InferenceError("model reply JSON is not an object")
    return parsed


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if num != num or num in (float("inf"), float("-inf")):
        return None
    return num


# ---------- Prompts ----------
def maternal_prompt(p: MaternalRiskInput) -> str:
    lines = [
        "As a medical AI assistant, analyze the following maternal health data and provide a risk assessment:",
        "",
        "Patient Data:",
        f"- Age: {p.age} years",
        f"- Risk Factors: {', '.join(p.risk_factors)}",
    ]
    if p.systolic:
        lines.append(f"- Blood Pressure: {p.systolic}/{p.diastolic} mmHg")
    if p.weight:
        lines.append(f"- Weight: {p.weight} kg")
    return "\n".join(lines) + _RISK_INSTRUCTIONS


def pediatric_prompt(p: PediatricRiskInput) -> str:
    lines = [
        "As a pediatric medical AI assistant, analyze the following infant health data and provide a risk assessment:",
        "",
        "Infant Data:",
    ]
    if p.birth_weight:
        lines.append(f"- Birth Weight: {p.birth_weight} kg")
    if p.gestation_weeks:
        lines.append(f"- Gestation: {p.gestation_weeks} weeks")
    lines.append(f"- Risk Factors: {', '.join(p.risk_factors)}")
    return "\n".join(lines) + _RISK_INSTRUCTIONS


_RISK_INSTRUCTIONS = """

Please provide:
1. A risk score from 0-100
2. Risk level (low, medium, high, or critical)
3. Confidence level (0-1)
4. Brief explanation

Format: JSON with fields: riskScore, riskLevel, confidence, explanation"""


# ---------- Models ----------
class RemoteRiskModel:
    name = "remote"

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def assess(self, patient: RiskInput) -> RiskAssessment:
        if isinstance(patient, MaternalRiskInput):
            prompt = maternal_prompt(patient)
        else:
            prompt = pediatric_prompt(patient)
        text = self.generator.generate(prompt, max_new_tokens=500, temperature=0.7, top_p=0.95)
        return self.parse(text, patient)

    @staticmethod
    def parse(text: str, patient: RiskInput) -> RiskAssessment:
        """
        Validate a model reply. Fields that are missing, non-numeric or out of
        range get computed defaults; the level always follows the final score.
        """
        data = extract_json_object(text)

        score = to_number(data.get("riskScore"))
        if score is None or not 0 <= score <= 100:
            score = default_score(patient.risk_factors)
        score = clamp_score(round(score))

        confidence = to_number(data.get("confidence"))
        if confidence is None or not 0 <= confidence <= 1:
            confidence = DEFAULT_CONFIDENCE

        explanation = data.get("explanation")
        if not isinstance(explanation, str) or not explanation.strip():
            explanation = text[:200]

        return RiskAssessment(
            risk_score=score,
            risk_level=risk_level_for(score),
            confidence=confidence,
            explanation=explanation,
        )


class CircuitBreaker:
    """
    Opens after ``failure_threshold`` consecutive failures and stays open for
    ``reset_after`` seconds; the next call after that is a trial.
    """

    def __init__(self, failure_threshold: int = 3, reset_after: float = 60.0, clock=time.monotonic):
        self.failure_threshold = max(1, failure_threshold)
        self.reset_after = reset_after
        self.clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._opened_at is not None and self.clock() - self._opened_at < self.reset_after

    def allow(self) -> bool:
        return not self.is_open

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.failure_threshold:
                self._opened_at = self.clock()


class ResilientRiskEstimator:
    def __init__(self, primary: Optional[RiskModel], fallback: RiskModel, breaker: Optional[CircuitBreaker] = None):
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or CircuitBreaker()

    def estimate(self, patient: RiskInput) -> RiskAssessment:
        if self.primary is not None and self.breaker.allow():
            try:
                result = self.primary.assess(patient)
                self.breaker.record_success()
                return result
            except Exception as e:
                self.breaker.record_failure()
                log.warning(f"[risk] {self.primary.name} model failed, using fallback: {e}")
        return self.fallback.assess(patient)


def build_text_generator(settings: Settings, timeout: float) -> Optional[TextGenerator]:
    if not settings.remote_inference_enabled:
        return None
    return HuggingFaceTextGenerator(settings.huggingface_api_key, settings.hf_model, timeout)


def build_risk_estimator(settings: Settings) -> ResilientRiskEstimator:
    generator = build_text_generator(settings, settings.inference_timeout)
    if generator is None:
        log.warning("[risk] HUGGINGFACE_API_KEY missing, heuristic risk scoring only")
    return ResilientRiskEstimator(
        primary=RemoteRiskModel(generator) if generator else None,
        fallback=HeuristicRiskModel(),
        breaker=CircuitBreaker(settings.circuit_failure_threshold, settings.circuit_reset_seconds),
    )
