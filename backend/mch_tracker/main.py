# backend/mch_tracker/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .advisor import build_advisor
from .analytics import router as analytics_router
from .auth import ensure_demo_user
from .auth import router as auth_router
from .config import Settings
from .db import utcnow
from .derived import DerivedDataGenerator
from .digital_twins import router as twins_router
from .inference import build_risk_estimator
from .patients import router as patients_router
from .policy import router as policy_router
from .resources import router as resources_router
from .store import RecordStore
from .twins import TwinLog

log = logging.getLogger("uvicorn.error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = RecordStore(settings.data_dir, persist=settings.persist_data)
        if settings.load_demo_data:
            store.load()
        ensure_demo_user(store)
        settings.upload_dir.mkdir(parents=True, exist_ok=True)

        app.state.settings = settings
        app.state.store = store
        app.state.estimator = build_risk_estimator(settings)
        app.state.generator = DerivedDataGenerator()
        app.state.advisor = build_advisor(settings)
        app.state.twins = TwinLog()

        log.info(f"[startup] environment={settings.app_env} cors={settings.cors_origins}")
        log.info(f"[startup] remote inference {'enabled' if settings.remote_inference_enabled else 'disabled'}")
        try:
            yield
        finally:
            store.close()
            log.info("[shutdown] store saved")

    app = FastAPI(title="MCH Tracker API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        log.exception(f"unhandled error on {request.method} {request.url.path}: {exc}")
        message = str(exc) if settings.is_development else "Internal server error"
        return JSONResponse(status_code=500, content={"error": message})

    @app.get("/health")
    def health():
        return {"status": "ok", "timestamp": utcnow().isoformat(), "environment": settings.app_env}

    @app.get("/status")
    def status():
        return {"ok": True}

    # Routers
    app.include_router(auth_router)
    app.include_router(patients_router)
    app.include_router(policy_router)
    app.include_router(resources_router)
    app.include_router(analytics_router)
    app.include_router(twins_router)

    return app


app = create_app()
