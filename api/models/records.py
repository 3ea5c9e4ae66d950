"""
Backend-neutral records exchanged between the signup workflow and the stores.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# All record timestamps are timezone-aware UTC
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ApplicationStatus(str, enum.Enum):
    pending = "Pending"
    verified = "Verified"

    @classmethod
    def parse(cls, raw: Optional[str]):
        """Map a stored status to (status, note). Unknown values read as Pending."""
        value = (raw or "").strip()
        for member in cls:
            if member.value.lower() == value.lower():
                return member, None
        return cls.pending, value or None


class AuditAction(str, enum.Enum):
    signup_attempt_new = "signup_attempt_new"
    signup_resubmitted_pending = "signup_resubmitted_pending"
    signup_already_verified = "signup_already_verified"
    otp_generated = "otp_generated"
    otp_sent = "otp_sent"
    otp_not_found = "otp_not_found"
    otp_invalid = "otp_invalid"
    otp_expired = "otp_expired"
    otp_verified = "otp_verified"
    verify_no_pending_application = "verify_no_pending_application"
    error_validation = "error_validation"
    error_otp_send = "error_otp_send"
    error_rate_limited = "error_rate_limited"
    error_submit_critical = "error_submit_critical"
    error_verify_critical = "error_verify_critical"


@dataclass
class ApplicationRecord:
    email: str
    first_name: str
    last_name: str = ""
    referral_code: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.pending
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    id: Optional[int] = None  # row identity assigned by the store

    @property
    def is_verified(self) -> bool:
        return self.status == ApplicationStatus.verified


@dataclass
class OtpRecord:
    email: str
    code: str
    expires_at: datetime
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class AuditEntry:
    email: str
    action: AuditAction
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


def most_recent(records):
    """Pick the most recently created record; later row identity breaks ties."""
    if not records:
        return None
    return max(records, key=lambda r: (r.created_at or EPOCH, r.id or 0))
