"""
Draft persistence for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import json
import uuid
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, String, UniqueConstraint, create_engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from vetdraft.models import DraftIdentity, DraftRecord


class DraftStore(Protocol):
    """Interface for draft record access. At most one record per identity."""

    def get_draft(self, identity: DraftIdentity) -> Optional[DraftRecord]:
        ...

    def upsert_draft(self, record: DraftRecord) -> None:
        ...

    def delete_draft(self, identity: DraftIdentity) -> bool:
        ...


class InMemoryDraftStore:
    """Simple in-memory draft store for development and tests."""

    def __init__(self):
        self.drafts: Dict[tuple[str, str, str], DraftRecord] = {}

    def get_draft(self, identity: DraftIdentity) -> Optional[DraftRecord]:
        record = self.drafts.get(identity.as_key())
        if record is None:
            return None
        return DraftRecord(
            form_id=record.form_id,
            user_id=record.user_id,
            patient_id=record.patient_id,
            data=json.loads(json.dumps(record.data)),
            updated_at=record.updated_at,
        )

    def upsert_draft(self, record: DraftRecord) -> None:
        # Round-trip through JSON to mimic the column type.
        stored = DraftRecord(
            form_id=record.form_id,
            user_id=record.user_id,
            patient_id=record.patient_id,
            data=json.loads(json.dumps(record.data)),
            updated_at=record.updated_at,
        )
        self.drafts[record.identity.as_key()] = stored

    def delete_draft(self, identity: DraftIdentity) -> bool:
        return self.drafts.pop(identity.as_key(), None) is not None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.drafts.clear()


class PostgresDraftStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDraftStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _select_row(identity: DraftIdentity):
        form_id, user_id, patient_id = identity.as_key()
        return select(FormAutosaveRow).where(
            FormAutosaveRow.form_id == form_id,
            FormAutosaveRow.user_id == user_id,
            FormAutosaveRow.patient_id == patient_id,
        )

    @staticmethod
    def _to_record(row: "FormAutosaveRow") -> DraftRecord:
        return DraftRecord(
            form_id=row.form_id,
            user_id=row.user_id,
            patient_id=row.patient_id,
            data=row.data or {},
            updated_at=row.updated_at,
        )

    def get_draft(self, identity: DraftIdentity) -> Optional[DraftRecord]:
        with self.Session() as session:
            row = session.execute(self._select_row(identity)).scalar_one_or_none()
            return self._to_record(row) if row else None

    def upsert_draft(self, record: DraftRecord) -> None:
        with self.Session() as session:
            existing = session.execute(
                self._select_row(record.identity)
            ).scalar_one_or_none()
            if existing:
                existing.data = record.data
                existing.updated_at = record.updated_at
                session.commit()
                return
            session.add(
                FormAutosaveRow(
                    id=uuid.uuid4().hex,
                    form_id=record.form_id,
                    user_id=record.user_id,
                    patient_id=record.patient_id,
                    data=record.data,
                    updated_at=record.updated_at,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                # Another writer inserted the same identity first; replace it.
                session.rollback()
                row = session.execute(self._select_row(record.identity)).scalar_one()
                row.data = record.data
                row.updated_at = record.updated_at
                session.commit()

    def delete_draft(self, identity: DraftIdentity) -> bool:
        form_id, user_id, patient_id = identity.as_key()
        with self.Session() as session:
            result = session.execute(
                delete(FormAutosaveRow).where(
                    FormAutosaveRow.form_id == form_id,
                    FormAutosaveRow.user_id == user_id,
                    FormAutosaveRow.patient_id == patient_id,
                )
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def count_drafts(self) -> int:
        with self.Session() as session:
            return session.query(FormAutosaveRow).count()


Base = declarative_base()


class FormAutosaveRow(Base):
    __tablename__ = "form_autosave"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "form_id", "patient_id", name="uq_form_autosave_identity"
        ),
    )

    id = Column(String, primary_key=True)
    form_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    patient_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    updated_at = Column(String, nullable=False)
