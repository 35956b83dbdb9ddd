# backend/mch_tracker/store.py
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .db import Base, make_engine, make_sessionmaker

log = logging.getLogger("uvicorn.error")


class Kind(str, Enum):
    users = "users"
    maternal = "maternal"
    pediatric = "pediatric"
    policies = "policies"
    resources = "resources"


@dataclass(frozen=True)
class Collection:
    orm: Type[Base]
    schema: Type[schemas.ApiModel]
    key_attr: str
    filename: str


COLLECTIONS: Dict[Kind, Collection] = {
    Kind.users: Collection(models.User, schemas.UserRecord, "id", "users.json"),
    Kind.maternal: Collection(models.MaternalPatient, schemas.MaternalPatient, "patient_id", "maternal.json"),
    Kind.pediatric: Collection(models.PediatricPatient, schemas.PediatricPatient, "child_id", "pediatric.json"),
    Kind.policies: Collection(models.PolicyScenario, schemas.PolicyScenario, "scenario_id", "policies.json"),
    Kind.resources: Collection(models.ResourceAllocation, schemas.ResourceAllocation, "region", "resources.json"),
}

Record = Union[schemas.ApiModel, Mapping[str, Any]]


class RecordStore:
    """
    Keyed collections for the five entity kinds.

    The authoritative copy lives in a process-local database; after every
    mutation all collections are written to one JSON array file each in
    ``data_dir`` (when persistence is on). Reads hand back pydantic copies,
    never ORM rows.
    """

    def __init__(self, data_dir: Optional[Path] = None, persist: bool = True, engine: Optional[Engine] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.persist = persist and self.data_dir is not None
        self.engine = engine or make_engine()
        Base.metadata.create_all(bind=self.engine)
        self.SessionLocal = make_sessionmaker(self.engine)
        self._lock = threading.RLock()

    @contextmanager
    def _session(self):
        db: Session = self.SessionLocal()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ---------- Reads ----------
    def get(self, kind: Kind, key: str) -> Optional[schemas.ApiModel]:
        coll = COLLECTIONS[kind]
        with self._lock, self._session() as db:
            row = db.query(coll.orm).filter(getattr(coll.orm, coll.key_attr) == key).one_or_none()
            return coll.schema.model_validate(row) if row else None

    def list(self, kind: Kind) -> List[schemas.ApiModel]:
        coll = COLLECTIONS[kind]
        with self._lock, self._session() as db:
            rows = db.query(coll.orm).order_by(coll.orm.row_id).all()
            return [coll.schema.model_validate(r) for r in rows]

    def count(self, kind: Kind) -> int:
        coll = COLLECTIONS[kind]
        with self._lock, self._session() as db:
            return db.query(coll.orm).count()

    def find_user_by_email(self, email: str) -> Optional[schemas.UserRecord]:
        with self._lock, self._session() as db:
            row = db.query(models.User).filter(models.User.email == email).one_or_none()
            return schemas.UserRecord.model_validate(row) if row else None

    # ---------- Writes ----------
    def upsert(self, kind: Kind, key: str, data: Record) -> schemas.ApiModel:
        """
        Insert or replace the record stored under ``key``. An existing record
        keeps its internal id; every other field is overwritten.
        """
        coll = COLLECTIONS[kind]
        record = data if isinstance(data, coll.schema) else coll.schema.model_validate(_as_mapping(data))
        values = record.model_dump(exclude={"id"})
        values[coll.key_attr] = key

        with self._lock:
            with self._session() as db:
                row = db.query(coll.orm).filter(getattr(coll.orm, coll.key_attr) == key).one_or_none()
                if row is None:
                    row = coll.orm(**{"id": str(uuid.uuid4()), **values})
                    db.add(row)
                else:
                    for attr, value in values.items():
                        setattr(row, attr, value)
                db.commit()
                db.refresh(row)
                stored = coll.schema.model_validate(row)
            self.save()
        return stored

    def delete(self, kind: Kind, key: str) -> bool:
        coll = COLLECTIONS[kind]
        with self._lock:
            with self._session() as db:
                removed = (
                    db.query(coll.orm)
                    .filter(getattr(coll.orm, coll.key_attr) == key)
                    .delete(synchronize_session=False)
                )
                db.commit()
            self.save()
        return bool(removed)

    # ---------- Snapshot files ----------
    def save(self) -> None:
        """Rewrite every collection file. Failures are logged, never raised."""
        if not self.persist:
            return
        try:
            with self._lock:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                for kind, coll in COLLECTIONS.items():
                    payload = [r.model_dump(mode="json", by_alias=True) for r in self.list(kind)]
                    (self.data_dir / coll.filename).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            log.error(f"[store] saving snapshot to {self.data_dir} failed: {e}")

    def load(self) -> Dict[Kind, int]:
        """
        Fill each collection from its file. A missing or malformed file leaves
        that collection empty and does not affect the others.
        """
        loaded: Dict[Kind, int] = {}
        if self.data_dir is None:
            return loaded
        for kind, coll in COLLECTIONS.items():
            path = self.data_dir / coll.filename
            try:
                items = json.loads(path.read_text(encoding="utf-8"))
                if not isinstance(items, list):
                    raise ValueError("expected a JSON array")
                records = [coll.schema.model_validate(item) for item in items]
            except FileNotFoundError:
                continue
            except (OSError, ValueError, ValidationError) as e:
                log.warning(f"[store] ignoring {path}: {e}")
                continue

            try:
                with self._lock, self._session() as db:
                    for rec in records:
                        ident = rec.id or str(uuid.uuid4())
                        values = rec.model_dump(exclude={"id"})
                        key = ident if coll.key_attr == "id" else values[coll.key_attr]
                        row = db.query(coll.orm).filter(getattr(coll.orm, coll.key_attr) == key).one_or_none()
                        if row is None:
                            db.add(coll.orm(id=ident, **values))
                        else:
                            for attr, value in values.items():
                                setattr(row, attr, value)
                        db.flush()
                    db.commit()
            except SQLAlchemyError as e:
                log.warning(f"[store] ignoring {path}: {e}")
                continue
            loaded[kind] = len(records)
            log.info(f"[store] loaded {len(records)} {kind.value} record(s) from {path}")
        return loaded

    def close(self) -> None:
        self.save()
        self.engine.dispose()


def _as_mapping(data: Record) -> Mapping[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return data
