import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from models.records import (
    ApplicationRecord,
    ApplicationStatus,
    AuditAction,
    OtpRecord,
    most_recent,
)
from stores.base import ApplicationStore, OtpStore
from utils.audit import AuditLogger
from utils.clock import utcnow
from utils.email import Mailer, render_otp_email
from utils.errors import (
    AlreadyVerified,
    ConfigurationError,
    ExternalTimeout,
    OtpExpired,
    OtpInvalid,
    OtpNotFound,
    SendFailure,
    SignupError,
    ValidationError,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_FAILED_NOTE = "EmailFailed"


@dataclass
class IssuedOtp:
    email: str
    code: str
    expires_at: datetime
    expires_display: str


@dataclass
class VerificationResult:
    email: str
    redirect_url: str
    application_updated: bool


class SignupWorkflow:
    """
    OTP issuance and verification for the signup funnel.

    Invariants kept by read-then-write ordering rather than store transactions:
    - at most one live OTP per email (issuing deletes the previous ones first)
    - at most one authoritative application per email (the most recent row)

    Two requests for the same email can interleave; a verify landing between
    the delete and the insert of a reissue sees OtpNotFound.
    """

    def __init__(
        self,
        applications: ApplicationStore,
        otps: OtpStore,
        audit: AuditLogger,
        mailer: Mailer,
        settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.applications = applications
        self.otps = otps
        self.audit = audit
        self.mailer = mailer
        self.settings = settings
        self.clock = clock

    def generate_code(self) -> str:
        """Uniform over [OTP_CODE_MIN, OTP_CODE_MAX], zero-padded to OTP_LENGTH digits."""
        low, high = self.settings.OTP_CODE_MIN, self.settings.OTP_CODE_MAX
        value = low + secrets.randbelow(high - low + 1)
        return f"{value:0{self.settings.OTP_LENGTH}d}"

    def format_expiry(self, expires_at: datetime) -> str:
        local = expires_at.astimezone(ZoneInfo(self.settings.DISPLAY_TIMEZONE))
        return local.strftime("%I:%M %p")

    ### Issuance

    def issue(
        self,
        email: str,
        first_name: str,
        referral_code: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> IssuedOtp:
        """
        Create or refresh the Pending application for *email* and send it a new OTP.

        Raises:
            ValidationError: missing first name/email or malformed email
            AlreadyVerified: the application for this email is already Verified
            SendFailure / ExternalTimeout / ConfigurationError: mail dispatch failed;
                the application and OTP are kept so the user can resubmit
        """
        email = (email or "").strip()
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        referral_code = (referral_code or "").strip() or None
        submitted = {
            "submittedFirstName": first_name,
            "submittedLastName": last_name,
            "submittedReferralCode": referral_code or "",
        }

        if not first_name or not email:
            self.audit.log_audit_event(email, AuditAction.error_validation, {
                "message": "Missing firstName or email in submission.", **submitted,
            })
            raise ValidationError("First Name and Email are required.")

        if not EMAIL_PATTERN.match(email):
            self.audit.log_audit_event(email, AuditAction.error_validation, {
                "message": "Invalid email format.", "email": email,
            })
            raise ValidationError("Please provide a valid email address.")

        now = self.clock()
        application = self.applications.find(email)

        if application is not None and application.is_verified:
            self.audit.log_audit_event(email, AuditAction.signup_already_verified, {
                "message": "User attempted signup with an already verified email.", **submitted,
            })
            raise AlreadyVerified()

        if application is not None:
            previous_note = application.note
            application.first_name = first_name
            application.last_name = last_name
            application.referral_code = referral_code
            application.note = None
            application.updated_at = now
            self.applications.update(application)
            self.audit.log_audit_event(email, AuditAction.signup_resubmitted_pending, {
                "message": "Pending application re-submitted; details updated and OTP resent.",
                "previousNote": previous_note or "",
                **submitted,
            })
        else:
            application = self.applications.insert(ApplicationRecord(
                email=email,
                first_name=first_name,
                last_name=last_name,
                referral_code=referral_code,
                status=ApplicationStatus.pending,
                created_at=now,
                updated_at=now,
            ))
            self.audit.log_audit_event(email, AuditAction.signup_attempt_new, submitted)

        code = self.generate_code()
        expires_at = now + timedelta(minutes=self.settings.OTP_EXPIRY_MINUTES)
        expires_display = self.format_expiry(expires_at)

        replaced = self._replace_otp(OtpRecord(email=email, code=code, expires_at=expires_at, created_at=now), now)
        self.audit.log_audit_event(email, AuditAction.otp_generated, {
            "message": "OTP generated and stored",
            "expiresAt": expires_display,
            "rowsRemoved": replaced,
        })

        self._send(application, code, expires_display)

        logger.info(f"Signup OTP issued for {email}, expires {expires_at.isoformat()}")
        return IssuedOtp(email=email, code=code, expires_at=expires_at, expires_display=expires_display)

    def _replace_otp(self, otp: OtpRecord, now: datetime) -> int:
        """Drop every OTP for this email, plus any expired OTP, then store *otp*."""
        stale = [r for r in self.otps.list_all() if r.email == otp.email or r.is_expired(now)]
        removed = self.otps.delete_many(stale)
        self.otps.insert(otp)
        return removed

    def _send(self, application: ApplicationRecord, code: str, expires_display: str) -> None:
        subject, body, html = render_otp_email(application.first_name, code, expires_display)
        try:
            self.mailer.send(
                application.email, subject, body, expires_display,
                first_name=application.first_name, passcode=code, html=html,
            )
        except (SendFailure, ExternalTimeout, ConfigurationError) as e:
            application.note = EMAIL_FAILED_NOTE
            try:
                self.applications.update(application)
            except SignupError as store_error:
                logger.error(f"Could not annotate application for {application.email}: {store_error}")
            self.audit.log_audit_event(application.email, AuditAction.error_otp_send, {
                "message": "Failed to send OTP email.",
                "provider": getattr(self.mailer, "name", "unknown"),
                "error": str(e)[:300],
                **e.details,
            })
            raise

        self.audit.log_audit_event(application.email, AuditAction.otp_sent, {
            "message": "OTP email sent successfully",
        })

    ### Verification

    def verify(self, email: str, submitted_code: str) -> VerificationResult:
        """
        Check *submitted_code* against the latest OTP for *email*.

        Mismatch keeps the OTP for retries; an expired match deletes it; a
        valid match deletes it and marks the most recent Pending application
        Verified. A valid code with no Pending application still succeeds.
        """
        email = (email or "").strip()
        code = str(submitted_code or "").strip()

        if not email or not code:
            self.audit.log_audit_event(email, AuditAction.error_validation, {
                "message": "Missing email or OTP in verification request.",
            })
            raise ValidationError("Email and OTP are required.")

        now = self.clock()
        otp = self.otps.find(email)

        if otp is None:
            self.audit.log_audit_event(email, AuditAction.otp_not_found, {
                "submittedOtp": code, "message": OtpNotFound.message,
            })
            raise OtpNotFound()

        # compare_digest rejects non-ASCII str
        if not secrets.compare_digest(otp.code.encode("utf-8"), code.encode("utf-8")):
            self.audit.log_audit_event(email, AuditAction.otp_invalid, {
                "submittedOtp": code, "message": OtpInvalid.message,
            })
            raise OtpInvalid()

        if otp.is_expired(now):
            self.otps.delete(otp)
            self.audit.log_audit_event(email, AuditAction.otp_expired, {
                "submittedOtp": code,
                "expiredAt": otp.expires_at.isoformat(),
                "message": OtpExpired.message,
            })
            raise OtpExpired()

        # single use
        self.otps.delete(otp)

        pending = most_recent([
            a for a in self.applications.find_all(email)
            if a.status == ApplicationStatus.pending
        ])
        if pending is not None:
            pending.status = ApplicationStatus.verified
            pending.verified_at = now
            pending.updated_at = now
            pending.note = None
            self.applications.update(pending)
        else:
            self.audit.log_audit_event(email, AuditAction.verify_no_pending_application, {
                "message": "OTP was valid, but no Pending application was found to mark Verified.",
            })

        self.audit.log_audit_event(email, AuditAction.otp_verified, {"verifiedAt": now.isoformat()})
        logger.info(f"Signup OTP verified for {email}")
        return VerificationResult(
            email=email,
            redirect_url=self.settings.EBANKING_SIGNUP_URL,
            application_updated=pending is not None,
        )
