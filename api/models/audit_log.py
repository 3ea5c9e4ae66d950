from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    email = Column(String(255), nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)  # e.g. 'otp_generated', 'otp_verified', 'error_otp_send'
    details = Column(JSON, nullable=True)  # Additional context as JSON
