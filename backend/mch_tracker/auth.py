import logging
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, EmailStr, Field

from .config import Settings
from .db import utcnow
from .deps import get_settings, get_store
from .models import UserRole
from .schemas import UserRecord
from .store import Kind, RecordStore

router = APIRouter(prefix="/api/auth", tags=["auth"])
log = logging.getLogger("uvicorn.error")

JWT_ALGORITHM = "HS256"
DEMO_EMAIL = "demo@healthai.com"
DEMO_PASSWORD = "password123"

_bearer = HTTPBearer(auto_error=False)


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=2)


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class AuthUser(BaseModel):
    id: str
    email: str
    name: str
    role: str


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_token(user: AuthUser, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expiry_days)
    claims = {**user.model_dump(), "sub": user.id, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> AuthUser:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
        return AuthUser(**claims)
    except (JWTError, ValueError) as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")


def public_user(user: UserRecord) -> AuthUser:
    return AuthUser(id=user.id, email=user.email, name=user.name, role=user.role)


def create_user(store: RecordStore, *, email: str, password: str, name: str, role: UserRole) -> UserRecord:
    if store.find_user_by_email(email):
        raise HTTPException(status_code=400, detail="User already exists")
    record = UserRecord(
        email=email,
        password=hash_password(password),
        name=name,
        role=role.value,
        created_at=utcnow(),
    )
    return store.upsert(Kind.users, str(uuid.uuid4()), record)


def ensure_demo_user(store: RecordStore) -> None:
    if store.find_user_by_email(DEMO_EMAIL):
        return
    create_user(store, email=DEMO_EMAIL, password=DEMO_PASSWORD, name="Dr. Sarah Chen", role=UserRole.admin)
    log.info(f"[auth] demo user created: {DEMO_EMAIL}")


def current_user(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> AuthUser:
    if creds is None or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="No token provided")
    return decode_token(creds.credentials, settings)


def _session_payload(user: UserRecord, settings: Settings) -> dict:
    pub = public_user(user)
    return {"user": pub.model_dump(), "token": create_token(pub, settings)}


@router.post("/register", status_code=201)
def register(
    payload: RegisterIn,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    user = create_user(store, email=payload.email, password=payload.password, name=payload.name, role=UserRole.user)
    return _session_payload(user, settings)


@router.post("/login")
def login(
    payload: LoginIn,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    user = store.find_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _session_payload(user, settings)


@router.get("/verify")
def verify(user: AuthUser = Depends(current_user)):
    return {"valid": True, "user": user.model_dump()}
