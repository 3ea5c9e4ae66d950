from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone
from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False, default="")
    referral_code = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="Pending")  # Pending | Verified
    note = Column(String(255), nullable=True)  # e.g. EmailFailed
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    verified_at = Column(DateTime(timezone=True), nullable=True)
