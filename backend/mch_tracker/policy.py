# backend/mch_tracker/policy.py
import logging
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from .advisor import Advisor
from .auth import current_user
from .deps import get_advisor, get_store
from .schemas import ApiModel, PolicyScenario, PolicySimulation
from .store import Kind, RecordStore

router = APIRouter(prefix="/api/policy", tags=["policy"], dependencies=[Depends(current_user)])
log = logging.getLogger("uvicorn.error")

NEW_SCENARIO_IMPLEMENTATION_TIME = "6-12 months"


class PolicyIn(ApiModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    target_population: int = Field(1000, gt=0)


class PredictedOutcomes(ApiModel):
    maternal_mortality: float
    infant_mortality: float
    cost_increase: float
    implementation_time: str


class ScenarioOut(ApiModel):
    id: str
    name: str
    description: str
    predicted_outcomes: PredictedOutcomes


def to_scenario_out(s: PolicyScenario) -> ScenarioOut:
    return ScenarioOut(
        id=s.scenario_id,
        name=s.name,
        description=s.description,
        predicted_outcomes=PredictedOutcomes(
            maternal_mortality=s.maternal_mortality_change,
            infant_mortality=s.infant_mortality_change,
            cost_increase=s.cost_increase,
            implementation_time=s.implementation_time,
        ),
    )


def new_scenario_id() -> str:
    return f"PS{str(int(time.time() * 1000))[-6:]}"


@router.get("/scenarios", response_model=List[ScenarioOut])
def list_scenarios(store: RecordStore = Depends(get_store)):
    return [to_scenario_out(s) for s in store.list(Kind.policies)]


@router.get("/scenarios/{scenario_id}", response_model=ScenarioOut)
def get_scenario(scenario_id: str, store: RecordStore = Depends(get_store)):
    scenario = store.get(Kind.policies, scenario_id)
    if not scenario:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return to_scenario_out(scenario)


@router.post("/scenarios", response_model=ScenarioOut)
def create_scenario(
    payload: PolicyIn,
    store: RecordStore = Depends(get_store),
    advisor: Advisor = Depends(get_advisor),
):
    sim = advisor.simulate_policy(payload.name, payload.description, payload.target_population)
    scenario = PolicyScenario(
        scenario_id=new_scenario_id(),
        name=payload.name,
        description=payload.description,
        maternal_mortality_change=sim.maternal_mortality_change,
        infant_mortality_change=sim.infant_mortality_change,
        cost_increase=sim.cost_increase,
        implementation_time=NEW_SCENARIO_IMPLEMENTATION_TIME,
    )
    stored = store.upsert(Kind.policies, scenario.scenario_id, scenario)
    log.info(f"[policy] scenario {stored.scenario_id} created: {stored.name}")
    return to_scenario_out(stored)


@router.post("/simulate", response_model=PolicySimulation)
def simulate(payload: PolicyIn, advisor: Advisor = Depends(get_advisor)):
    return advisor.simulate_policy(payload.name, payload.description, payload.target_population)


@router.delete("/scenarios/{scenario_id}")
def delete_scenario(scenario_id: str, store: RecordStore = Depends(get_store)):
    store.delete(Kind.policies, scenario_id)
    return {"success": True}
