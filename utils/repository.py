"""Complaint, identity and OTP storage behind one interface, SQL-backed or in-process."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from extensions import db
from models import COMPLAINT_STATUSES, Complaint, PendingOtp, VerifiedIdentity
from models.records import ComplaintRecord, IdentityRecord, OtpChallenge
from utils.errors import DuplicateKeyError

DateRange = Tuple[datetime, datetime]


def advance_timestamp(previous: datetime | None, now: datetime) -> datetime:
    """Return ``now`` unless the clock has not moved past ``previous``."""
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _empty_stats() -> Dict[str, Any]:
    return {"total": 0, "by_status": {status: 0 for status in COMPLAINT_STATUSES}, "by_type": {}}


class ComplaintRepository(ABC):
    backend = "abstract"

    @abstractmethod
    def create(self, record: ComplaintRecord) -> ComplaintRecord:
        """Persist a new complaint; raises DuplicateKeyError if the id is taken."""

    @abstractmethod
    def get(self, complaint_id: str) -> Optional[ComplaintRecord]:
        ...

    @abstractmethod
    def update(self, complaint_id: str, changes: Dict[str, Any], now: datetime) -> Optional[ComplaintRecord]:
        """Apply ``changes`` atomically and advance ``updated_at``; None when absent."""

    @abstractmethod
    def delete(self, complaint_id: str) -> bool:
        ...

    @abstractmethod
    def list(
        self,
        status: str | None = None,
        issue_type: str | None = None,
        created_between: DateRange | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[ComplaintRecord], int]:
        """Newest first; returns the requested page and the filtered total."""

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        ...


class IdentityRepository(ABC):
    @abstractmethod
    def get_by_phone(self, phone: str) -> Optional[IdentityRecord]:
        ...

    @abstractmethod
    def get_by_citizen_id(self, citizen_id: str) -> Optional[IdentityRecord]:
        ...

    @abstractmethod
    def create(self, record: IdentityRecord) -> IdentityRecord:
        """Raises DuplicateKeyError when the phone or citizen id already exists."""


class OtpStore(ABC):
    @abstractmethod
    def put(self, challenge: OtpChallenge) -> None:
        """Store a challenge, replacing any outstanding one for the phone."""

    @abstractmethod
    def get(self, phone: str) -> Optional[OtpChallenge]:
        ...

    @abstractmethod
    def consume(self, phone: str, code: str) -> bool:
        """Delete the challenge only if it still holds ``code``; True for the single winner."""

    @abstractmethod
    def record_failure(self, phone: str, code: str) -> int:
        """Count a mismatched attempt against the challenge holding ``code``."""


# ---------------------------------------------------------------------------
# In-process backend
# ---------------------------------------------------------------------------
class InMemoryComplaintRepository(ComplaintRepository):
    backend = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, ComplaintRecord] = {}

    def create(self, record: ComplaintRecord) -> ComplaintRecord:
        with self._lock:
            if record.complaint_id in self._rows:
                raise DuplicateKeyError(record.complaint_id)
            self._rows[record.complaint_id] = record
        return record

    def get(self, complaint_id: str) -> Optional[ComplaintRecord]:
        with self._lock:
            return self._rows.get(complaint_id)

    def update(self, complaint_id: str, changes: Dict[str, Any], now: datetime) -> Optional[ComplaintRecord]:
        with self._lock:
            current = self._rows.get(complaint_id)
            if current is None:
                return None
            updated = replace(current, **changes, updated_at=advance_timestamp(current.updated_at, now))
            self._rows[complaint_id] = updated
            return updated

    def delete(self, complaint_id: str) -> bool:
        with self._lock:
            return self._rows.pop(complaint_id, None) is not None

    def list(self, status=None, issue_type=None, created_between=None, skip=0, limit=100):
        with self._lock:
            # Newest insert first so equal timestamps still list newest first.
            rows = list(reversed(self._rows.values()))
        if status:
            rows = [r for r in rows if r.status == status]
        if issue_type:
            rows = [r for r in rows if r.issue_type == issue_type]
        if created_between:
            start, end = created_between
            rows = [r for r in rows if start <= r.created_at < end]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[skip : skip + limit], len(rows)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            rows = list(self._rows.values())
        result = _empty_stats()
        result["total"] = len(rows)
        result["by_status"].update(Counter(r.status for r in rows))
        result["by_type"] = dict(Counter(r.issue_type for r in rows))
        return result


class InMemoryIdentityRepository(IdentityRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_phone: Dict[str, IdentityRecord] = {}
        self._by_citizen_id: Dict[str, IdentityRecord] = {}

    def get_by_phone(self, phone: str) -> Optional[IdentityRecord]:
        with self._lock:
            return self._by_phone.get(phone)

    def get_by_citizen_id(self, citizen_id: str) -> Optional[IdentityRecord]:
        with self._lock:
            return self._by_citizen_id.get(citizen_id)

    def create(self, record: IdentityRecord) -> IdentityRecord:
        with self._lock:
            if record.phone in self._by_phone or record.citizen_id in self._by_citizen_id:
                raise DuplicateKeyError(record.phone)
            self._by_phone[record.phone] = record
            self._by_citizen_id[record.citizen_id] = record
        return record


class InMemoryOtpStore(OtpStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._challenges: Dict[str, OtpChallenge] = {}

    def put(self, challenge: OtpChallenge) -> None:
        with self._lock:
            self._challenges[challenge.phone] = challenge

    def get(self, phone: str) -> Optional[OtpChallenge]:
        with self._lock:
            return self._challenges.get(phone)

    def consume(self, phone: str, code: str) -> bool:
        with self._lock:
            current = self._challenges.get(phone)
            if current is None or current.code != code:
                return False
            del self._challenges[phone]
            return True

    def record_failure(self, phone: str, code: str) -> int:
        with self._lock:
            current = self._challenges.get(phone)
            if current is None or current.code != code:
                return 0
            updated = replace(current, attempts=current.attempts + 1)
            self._challenges[phone] = updated
            return updated.attempts


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------
class SqlComplaintRepository(ComplaintRepository):
    backend = "sql"

    def create(self, record: ComplaintRecord) -> ComplaintRecord:
        db.session.add(Complaint.from_record(record))
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if Complaint.query.filter_by(complaint_id=record.complaint_id).first():
                raise DuplicateKeyError(record.complaint_id) from exc
            raise
        return record

    def get(self, complaint_id: str) -> Optional[ComplaintRecord]:
        row = Complaint.query.filter_by(complaint_id=complaint_id).first()
        return row.to_record() if row else None

    def update(self, complaint_id: str, changes: Dict[str, Any], now: datetime) -> Optional[ComplaintRecord]:
        try:
            row = Complaint.query.filter_by(complaint_id=complaint_id).with_for_update().first()
            if row is None:
                db.session.rollback()
                return None
            for field, value in changes.items():
                setattr(row, field, value)
            row.updated_at = advance_timestamp(row.updated_at, now)
            record = row.to_record()
            db.session.commit()
            return record
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def delete(self, complaint_id: str) -> bool:
        try:
            deleted = Complaint.query.filter_by(complaint_id=complaint_id).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return deleted > 0

    def list(self, status=None, issue_type=None, created_between=None, skip=0, limit=100):
        query = Complaint.query
        if status:
            query = query.filter(Complaint.status == status)
        if issue_type:
            query = query.filter(Complaint.issue_type == issue_type)
        if created_between:
            start, end = created_between
            query = query.filter(Complaint.created_at >= start, Complaint.created_at < end)
        total = query.count()
        rows = query.order_by(Complaint.created_at.desc(), Complaint.id.desc()).offset(skip).limit(limit).all()
        return [row.to_record() for row in rows], total

    def stats(self) -> Dict[str, Any]:
        result = _empty_stats()
        for status, count in db.session.query(Complaint.status, func.count(Complaint.id)).group_by(Complaint.status):
            result["by_status"][status] = count
            result["total"] += count
        result["by_type"] = {
            issue_type: count
            for issue_type, count in db.session.query(Complaint.issue_type, func.count(Complaint.id)).group_by(
                Complaint.issue_type
            )
        }
        return result


class SqlIdentityRepository(IdentityRepository):
    def get_by_phone(self, phone: str) -> Optional[IdentityRecord]:
        row = VerifiedIdentity.query.filter_by(phone=phone).first()
        return row.to_record() if row else None

    def get_by_citizen_id(self, citizen_id: str) -> Optional[IdentityRecord]:
        row = VerifiedIdentity.query.filter_by(citizen_id=citizen_id).first()
        return row.to_record() if row else None

    def create(self, record: IdentityRecord) -> IdentityRecord:
        db.session.add(VerifiedIdentity(phone=record.phone, citizen_id=record.citizen_id, joined_at=record.joined_at))
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateKeyError(record.phone) from exc
        return record


class SqlOtpStore(OtpStore):
    def put(self, challenge: OtpChallenge) -> None:
        try:
            db.session.merge(
                PendingOtp(
                    phone=challenge.phone,
                    code=challenge.code,
                    expires_at=challenge.expires_at,
                    attempts=challenge.attempts,
                )
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def get(self, phone: str) -> Optional[OtpChallenge]:
        # populate_existing: another request may have replaced the row since it was loaded.
        row = PendingOtp.query.filter_by(phone=phone).populate_existing().first()
        return row.to_challenge() if row else None

    def consume(self, phone: str, code: str) -> bool:
        try:
            deleted = PendingOtp.query.filter_by(phone=phone, code=code).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return deleted == 1

    def record_failure(self, phone: str, code: str) -> int:
        try:
            PendingOtp.query.filter_by(phone=phone, code=code).update(
                {PendingOtp.attempts: PendingOtp.attempts + 1}, synchronize_session=False
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        row = PendingOtp.query.filter_by(phone=phone, code=code).populate_existing().first()
        return row.attempts if row else 0


@dataclass
class Storage:
    backend: str
    complaints: ComplaintRepository
    identities: IdentityRepository
    otps: OtpStore

    def is_connected(self) -> bool:
        if self.backend != "sql":
            return False
        try:
            db.session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            db.session.rollback()
            return False


def memory_storage() -> Storage:
    return Storage(
        backend="memory",
        complaints=InMemoryComplaintRepository(),
        identities=InMemoryIdentityRepository(),
        otps=InMemoryOtpStore(),
    )


def sql_storage() -> Storage:
    return Storage(
        backend="sql",
        complaints=SqlComplaintRepository(),
        identities=SqlIdentityRepository(),
        otps=SqlOtpStore(),
    )


def init_storage(app) -> Storage:
    """Pick the backend from STORAGE_BACKEND and attach it to the app."""
    backend = (app.config.get("STORAGE_BACKEND") or "auto").lower()
    storage = None
    if backend in {"sql", "auto"}:
        try:
            with app.app_context():
                db.create_all()
                db.session.execute(text("SELECT 1"))
            storage = sql_storage()
        except OperationalError:
            if backend == "sql":
                raise
            app.logger.warning(
                "Database unreachable; demo mode active with in-memory storage",
                extra={"database_uri": app.config.get("SQLALCHEMY_DATABASE_URI", "").split("@")[-1]},
            )
    if storage is None:
        storage = memory_storage()
    app.extensions["civic_storage"] = storage
    app.logger.info("Storage initialized", extra={"backend": storage.backend})
    return storage


def current_storage() -> Storage:
    return current_app.extensions["civic_storage"]
