# backend/mch_tracker/advisor.py
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import Settings
from .inference import TextGenerator, build_text_generator, extract_json_object, to_number
from .schemas import PolicySimulation

log = logging.getLogger("uvicorn.error")

DEFAULT_SIMULATION = PolicySimulation(
    maternal_mortality_change=-15,
    infant_mortality_change=-12,
    cost_increase=18,
    confidence=0.75,
)

_LIST_MARKER = re.compile(r"^\d+[.)]\s*")
_BULLET = re.compile(r"^[-•]\s*")


@dataclass
class PopulationSummary:
    maternal_count: int
    pediatric_count: int
    high_risk_count: int
    top_risk_factors: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.maternal_count + self.pediatric_count


def parse_insights(text: str) -> List[str]:
    insights = []
    for line in (text or "").splitlines():
        cleaned = _BULLET.sub("", _LIST_MARKER.sub("", line.strip())).strip()
        if 20 < len(cleaned) < 300:
            insights.append(cleaned)
    return insights[:5]


def fallback_insights(summary: PopulationSummary) -> List[str]:
    total = summary.total
    if summary.top_risk_factors:
        top_factor, top_count = summary.top_risk_factors[0]
    else:
        top_factor, top_count = "No risk factors identified", 0
    ratio = f"{summary.high_risk_count / total * 100:.1f}" if total > 0 else "0.0"
    additional = round(summary.high_risk_count * 0.3)

    return [
        f"Currently monitoring {total} total patients with {summary.high_risk_count} identified as high-risk.",
        f'Top risk factor "{top_factor}" appears in {top_count} patient records, requiring focused intervention.',
        f"High-risk patient ratio of {ratio}% suggests need for enhanced monitoring protocols.",
        "Resource allocation should prioritize regions with highest concentration of identified risk factors.",
        f"Predictive analytics indicate potential for {additional} additional high-risk identifications "
        "with expanded data collection.",
    ]


def parse_policy_simulation(text: str) -> PolicySimulation:
    data = extract_json_object(text)

    def pick(name: str, default: float) -> float:
        value = to_number(data.get(name))
        # a zero reading is treated as "not given"
        return value if value else default

    return PolicySimulation(
        maternal_mortality_change=pick("maternalMortalityChange", DEFAULT_SIMULATION.maternal_mortality_change),
        infant_mortality_change=pick("infantMortalityChange", DEFAULT_SIMULATION.infant_mortality_change),
        cost_increase=pick("costIncrease", DEFAULT_SIMULATION.cost_increase),
        confidence=min(1.0, max(0.0, pick("confidence", DEFAULT_SIMULATION.confidence))),
    )


class Advisor:
    """Population insights and policy projections; every call has a fallback."""

    def __init__(self, generator: Optional[TextGenerator] = None):
        self.generator = generator

    def insights(self, summary: PopulationSummary) -> List[str]:
        if self.generator is None:
            return fallback_insights(summary)

        factors = ", ".join(f"{name} ({count})" for name, count in summary.top_risk_factors)
        prompt = (
            "As a healthcare analytics AI, analyze the following population health data "
            "and provide 5 actionable insights:\n\n"
            "Healthcare Data:\n"
            f"- Total maternal patients: {summary.maternal_count}\n"
            f"- Total pediatric patients: {summary.pediatric_count}\n"
            f"- High-risk patients: {summary.high_risk_count}\n"
            f"- Top risk factors: {factors}\n\n"
            "Provide 5 specific, actionable insights about trends, concerns, or recommendations.\n"
            "Format each insight as a single clear sentence."
        )
        try:
            text = self.generator.generate(prompt, max_new_tokens=800, temperature=0.8, top_p=0.95)
        except Exception as e:
            log.warning(f"[advisor] insight generation failed, using fallback: {e}")
            return fallback_insights(summary)

        insights = parse_insights(text)
        return insights or fallback_insights(summary)

    def simulate_policy(self, name: str, description: str, target_population: int) -> PolicySimulation:
        if self.generator is None:
            return DEFAULT_SIMULATION.model_copy()

        prompt = (
            "As a public health policy AI analyst, simulate the impact of the following healthcare policy:\n\n"
            f"Policy: {name}\n"
            f"Description: {description}\n"
            f"Target Population: {target_population} patients\n\n"
            "Predict:\n"
            "1. Maternal mortality change (percentage, negative means reduction)\n"
            "2. Infant mortality change (percentage, negative means reduction)\n"
            "3. Cost increase (percentage)\n"
            "4. Confidence level (0-1)\n\n"
            "Format: JSON with fields: maternalMortalityChange, infantMortalityChange, costIncrease, confidence"
        )
        try:
            text = self.generator.generate(prompt, max_new_tokens=400, temperature=0.7, top_p=0.95)
            return parse_policy_simulation(text)
        except Exception as e:
            log.warning(f"[advisor] policy simulation failed, using defaults: {e}")
            return DEFAULT_SIMULATION.model_copy()


def build_advisor(settings: Settings) -> Advisor:
    return Advisor(build_text_generator(settings, settings.insights_timeout))
