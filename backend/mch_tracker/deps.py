# backend/mch_tracker/deps.py
# Request-scoped accessors for the objects built in the app lifespan.
from fastapi import Request

from .advisor import Advisor
from .config import Settings
from .derived import DerivedDataGenerator
from .inference import ResilientRiskEstimator
from .store import RecordStore
from .twins import TwinLog


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_estimator(request: Request) -> ResilientRiskEstimator:
    return request.app.state.estimator


def get_generator(request: Request) -> DerivedDataGenerator:
    return request.app.state.generator


def get_advisor(request: Request) -> Advisor:
    return request.app.state.advisor


def get_twins(request: Request) -> TwinLog:
    return request.app.state.twins
