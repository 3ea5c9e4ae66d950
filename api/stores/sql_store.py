"""
Relational backend for the signup stores (SQLAlchemy ORM).

Email columns carry unique indexes, so the duplicate rows the spreadsheet
backend can accumulate never appear here; the most-recent-first ordering
is kept so every backend answers `find` the same way.
"""
import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from models.application import Application
from models.audit_log import AuditLog
from models.pending_signup import PendingSignupOtp
from models.records import ApplicationRecord, ApplicationStatus, AuditEntry, OtpRecord
from stores.base import ApplicationStore, AuditTrail, OtpStore
from utils.clock import as_utc, utcnow
from utils.errors import ExternalTimeout, StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def _session_scope(session_factory):
    db: Session = session_factory()
    try:
        yield db
        db.commit()
    except PoolTimeoutError as e:
        db.rollback()
        logger.error(f"Database pool timeout: {e}")
        raise ExternalTimeout("Timed out waiting for the database.") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database operation failed: {e}")
        raise StoreUnavailable(details={"error": str(e)[:300]}) from e
    finally:
        db.close()


def _to_application(row: Application) -> ApplicationRecord:
    status, stray = ApplicationStatus.parse(row.status)
    return ApplicationRecord(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name or "",
        referral_code=row.referral_code,
        status=status,
        note=row.note or stray,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        verified_at=as_utc(row.verified_at),
    )


def _to_otp(row: PendingSignupOtp) -> OtpRecord:
    return OtpRecord(
        id=row.id,
        email=row.email,
        code=row.otp_code,
        expires_at=as_utc(row.otp_expires_at),
        created_at=as_utc(row.created_at),
    )


class SqlApplicationStore(ApplicationStore):

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def list_all(self) -> List[ApplicationRecord]:
        with _session_scope(self.session_factory) as db:
            return [_to_application(row) for row in db.query(Application).order_by(Application.id).all()]

    def find_all(self, email: str) -> List[ApplicationRecord]:
        with _session_scope(self.session_factory) as db:
            rows = db.query(Application).filter(Application.email == email).order_by(Application.id).all()
            return [_to_application(row) for row in rows]

    def find(self, email: str) -> Optional[ApplicationRecord]:
        with _session_scope(self.session_factory) as db:
            row = (
                db.query(Application)
                .filter(Application.email == email)
                .order_by(Application.created_at.desc(), Application.id.desc())
                .first()
            )
            return _to_application(row) if row else None

    def insert(self, record: ApplicationRecord) -> ApplicationRecord:
        now = utcnow()
        with _session_scope(self.session_factory) as db:
            row = Application(
                email=record.email,
                first_name=record.first_name,
                last_name=record.last_name or "",
                referral_code=record.referral_code,
                status=record.status.value,
                note=record.note,
                created_at=record.created_at or now,
                updated_at=record.updated_at or now,
                verified_at=record.verified_at,
            )
            db.add(row)
            db.flush()
            record.id = row.id
            record.created_at = as_utc(row.created_at)
            record.updated_at = as_utc(row.updated_at)
        return record

    def update(self, record: ApplicationRecord) -> ApplicationRecord:
        with _session_scope(self.session_factory) as db:
            row = db.get(Application, record.id)
            if row is None:
                raise StoreUnavailable(details={"error": f"application {record.id} vanished"})
            row.first_name = record.first_name
            row.last_name = record.last_name or ""
            row.referral_code = record.referral_code
            row.status = record.status.value
            row.note = record.note
            row.updated_at = record.updated_at or utcnow()
            row.verified_at = record.verified_at
        return record

    def delete(self, record: ApplicationRecord) -> None:
        with _session_scope(self.session_factory) as db:
            db.query(Application).filter(Application.id == record.id).delete()


class SqlOtpStore(OtpStore):

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def list_all(self) -> List[OtpRecord]:
        with _session_scope(self.session_factory) as db:
            return [_to_otp(row) for row in db.query(PendingSignupOtp).order_by(PendingSignupOtp.id).all()]

    def find_all(self, email: str) -> List[OtpRecord]:
        with _session_scope(self.session_factory) as db:
            rows = db.query(PendingSignupOtp).filter_by(email=email).order_by(PendingSignupOtp.id).all()
            return [_to_otp(row) for row in rows]

    def find(self, email: str) -> Optional[OtpRecord]:
        with _session_scope(self.session_factory) as db:
            row = (
                db.query(PendingSignupOtp)
                .filter_by(email=email)
                .order_by(PendingSignupOtp.created_at.desc(), PendingSignupOtp.id.desc())
                .first()
            )
            return _to_otp(row) if row else None

    def insert(self, record: OtpRecord) -> OtpRecord:
        with _session_scope(self.session_factory) as db:
            row = PendingSignupOtp(
                email=record.email,
                otp_code=record.code,
                otp_expires_at=record.expires_at,
                created_at=record.created_at or utcnow(),
            )
            db.add(row)
            db.flush()
            record.id = row.id
            record.created_at = as_utc(row.created_at)
        return record

    def update(self, record: OtpRecord) -> OtpRecord:
        with _session_scope(self.session_factory) as db:
            row = db.get(PendingSignupOtp, record.id)
            if row is None:
                raise StoreUnavailable(details={"error": f"otp {record.id} vanished"})
            row.otp_code = record.code
            row.otp_expires_at = record.expires_at
        return record

    def delete(self, record: OtpRecord) -> None:
        with _session_scope(self.session_factory) as db:
            db.query(PendingSignupOtp).filter(PendingSignupOtp.id == record.id).delete()


class SqlAuditTrail(AuditTrail):

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def append(self, entry: AuditEntry) -> None:
        with _session_scope(self.session_factory) as db:
            db.add(AuditLog(
                timestamp=entry.timestamp or utcnow(),
                email=entry.email,
                action=entry.action.value,
                details=entry.details,
            ))
