# backend/mch_tracker/patients.py
import logging
import shutil
import traceback
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from .auth import current_user
from .config import Settings
from .derived import DerivedDataGenerator
from .deps import get_estimator, get_generator, get_settings, get_store
from .inference import ResilientRiskEstimator
from .ingestion import DatasetKind, IngestionError, kind_from_filename, process_upload
from .schemas import MaternalPatient, PediatricPatient, UploadSummary
from .store import Kind, RecordStore

router = APIRouter(prefix="/api/patients", tags=["patients"], dependencies=[Depends(current_user)])
log = logging.getLogger("uvicorn.error")


# ---------- Upload ----------
def _handle_upload(
    file: Optional[UploadFile],
    kind: DatasetKind,
    store: RecordStore,
    estimator: ResilientRiskEstimator,
    generator: DerivedDataGenerator,
    settings: Settings,
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    log.info(f"[upload] processing {kind.value} file: {file.filename}")
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    dest = settings.upload_dir / uuid.uuid4().hex

    try:
        with open(dest, "wb") as out:
            shutil.copyfileobj(file.file, out)
        if dest.stat().st_size > settings.max_file_size:
            dest.unlink()
            raise HTTPException(status_code=413, detail=f"File exceeds {settings.max_file_size} bytes")
        return process_upload(dest, kind, store, estimator, generator)
    except HTTPException:
        raise
    except (IngestionError, OSError) as e:
        log.error(f"[upload] error processing {kind.value} CSV: {e}")
        if dest.exists():
            dest.unlink()
        detail = {"error": f"Error processing data: {e}"}
        if settings.is_development:
            detail["details"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=detail)


@router.post("/upload", response_model=UploadSummary, response_model_exclude_none=True)
def upload_any(
    file: Optional[UploadFile] = File(None),
    store: RecordStore = Depends(get_store),
    estimator: ResilientRiskEstimator = Depends(get_estimator),
    generator: DerivedDataGenerator = Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    kind = kind_from_filename(file.filename if file else None)
    return _handle_upload(file, kind, store, estimator, generator, settings)


@router.post("/maternal/upload", response_model=UploadSummary, response_model_exclude_none=True)
def upload_maternal(
    file: Optional[UploadFile] = File(None),
    store: RecordStore = Depends(get_store),
    estimator: ResilientRiskEstimator = Depends(get_estimator),
    generator: DerivedDataGenerator = Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    return _handle_upload(file, DatasetKind.maternal, store, estimator, generator, settings)


@router.post("/pediatric/upload", response_model=UploadSummary, response_model_exclude_none=True)
def upload_pediatric(
    file: Optional[UploadFile] = File(None),
    store: RecordStore = Depends(get_store),
    estimator: ResilientRiskEstimator = Depends(get_estimator),
    generator: DerivedDataGenerator = Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    return _handle_upload(file, DatasetKind.pediatric, store, estimator, generator, settings)


# ---------- Maternal ----------
@router.get("/maternal", response_model=List[MaternalPatient])
def list_maternal(store: RecordStore = Depends(get_store)):
    return store.list(Kind.maternal)


@router.get("/maternal/{patient_id}", response_model=MaternalPatient)
def get_maternal(patient_id: str, store: RecordStore = Depends(get_store)):
    patient = store.get(Kind.maternal, patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/maternal", response_model=MaternalPatient)
def upsert_maternal(payload: MaternalPatient, store: RecordStore = Depends(get_store)):
    return store.upsert(Kind.maternal, payload.patient_id, payload)


@router.delete("/maternal/{patient_id}")
def delete_maternal(patient_id: str, store: RecordStore = Depends(get_store)):
    store.delete(Kind.maternal, patient_id)
    return {"success": True}


# ---------- Pediatric ----------
@router.get("/pediatric", response_model=List[PediatricPatient])
def list_pediatric(store: RecordStore = Depends(get_store)):
    return store.list(Kind.pediatric)


@router.get("/pediatric/{child_id}", response_model=PediatricPatient)
def get_pediatric(child_id: str, store: RecordStore = Depends(get_store)):
    patient = store.get(Kind.pediatric, child_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/pediatric", response_model=PediatricPatient)
def upsert_pediatric(payload: PediatricPatient, store: RecordStore = Depends(get_store)):
    return store.upsert(Kind.pediatric, payload.child_id, payload)


@router.delete("/pediatric/{child_id}")
def delete_pediatric(child_id: str, store: RecordStore = Depends(get_store)):
    store.delete(Kind.pediatric, child_id)
    return {"success": True}
