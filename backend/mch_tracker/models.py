from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .db import Base


# -------------------------
# Roles
# -------------------------
class UserRole(PyEnum):
    user = "user"
    admin = "admin"


# -------------------------
# Users
# -------------------------
class User(Base):
    __tablename__ = "users"

    # row_id keeps insertion order; id is the identity exposed to callers
    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=UserRole.user.value)

    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )


# -------------------------
# Maternal patients
# -------------------------
class MaternalPatient(Base):
    __tablename__ = "maternal_patients"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    # natural key from the uploaded file
    patient_id = Column(String(128), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=False)

    risk_score = Column(Integer, nullable=False)
    risk_level = Column(String(16), nullable=False)
    risk_factors = Column(JSON, nullable=False, default=list)

    last_updated = Column(DateTime, nullable=False)


# -------------------------
# Pediatric patients
# -------------------------
class PediatricPatient(Base):
    __tablename__ = "pediatric_patients"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    child_id = Column(String(128), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    birth_weight = Column(Float, nullable=True)     # kg
    gestation_weeks = Column(Integer, nullable=True)

    risk_score = Column(Integer, nullable=False)
    risk_level = Column(String(16), nullable=False)
    risk_factors = Column(JSON, nullable=False, default=list)

    last_updated = Column(DateTime, nullable=False)


# -------------------------
# Policy scenarios
# -------------------------
class PolicyScenario(Base):
    __tablename__ = "policy_scenarios"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    scenario_id = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # signed percentages, negative means reduction
    maternal_mortality_change = Column(Float, nullable=False)
    infant_mortality_change = Column(Float, nullable=False)
    cost_increase = Column(Float, nullable=False)
    implementation_time = Column(String(64), nullable=False, default="")


# -------------------------
# Resource allocations
# -------------------------
class ResourceAllocation(Base):
    __tablename__ = "resource_allocations"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    region = Column(String(128), unique=True, index=True, nullable=False)
    nicu_beds = Column(Integer, nullable=False)
    obgyn_staff = Column(Integer, nullable=False)
    vaccine_stock = Column(Integer, nullable=False)  # percent of target

    last_updated = Column(DateTime, nullable=False)
