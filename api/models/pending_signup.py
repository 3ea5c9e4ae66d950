from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone
from database import Base


class PendingSignupOtp(Base):
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    otp_code = Column(String(16), nullable=False)
    otp_expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
