import logging
from threading import Lock
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from config.settings import Settings
from middleware.rate_limiter import FixedWindowRateLimiter, client_ip
from models.records import AuditAction
from services.email_validation_service import EmailValidationService
from services.signup_service import SignupWorkflow
from utils.audit import AuditLogger
from utils.clock import utcnow
from utils.email import build_mailer
from utils.errors import ConfigurationError, RateLimited, SignupError, StoreUnavailable

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Process-wide services for one app instance: stores, mailer, rate limiter.

    Stores are built on first use so a misconfigured backend is reported on
    the request that needs it. A failed build is retried on the next request.
    """

    def __init__(self, settings: Settings, applications=None, otps=None, audit_trail=None,
                 mailer=None, rate_limiter=None, email_validator=None, clock=utcnow):
        self.settings = settings
        self.clock = clock
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )
        self._applications = applications
        self._otps = otps
        self._audit_trail = audit_trail
        self._mailer = mailer
        self._email_validator = email_validator
        self._workflow: Optional[SignupWorkflow] = None
        self._lock = Lock()

    def _build_stores(self):
        backend = self.settings.STORE_BACKEND
        logger.info(f"Initializing '{backend}' signup stores")

        if backend == "memory":
            from stores.memory_store import MemoryApplicationStore, MemoryAuditTrail, MemoryOtpStore
            return MemoryApplicationStore(), MemoryOtpStore(), MemoryAuditTrail()

        if backend == "database":
            from database import Base, get_engine, get_session_factory
            from stores.sql_store import SqlApplicationStore, SqlAuditTrail, SqlOtpStore
            import models  # noqa: F401  registers every table on Base.metadata

            if not self.settings.DATABASE_URL:
                raise ConfigurationError("DATABASE_URL is not set.")
            try:
                engine = get_engine(self.settings.DATABASE_URL, self.settings.EXTERNAL_CALL_TIMEOUT_SECONDS)
                Base.metadata.create_all(bind=engine)
            except SQLAlchemyError as e:
                logger.error(f"Database init failed: {e}")
                raise StoreUnavailable(details={"error": str(e)[:300]}) from e
            session_factory = get_session_factory(engine)
            return (
                SqlApplicationStore(session_factory),
                SqlOtpStore(session_factory),
                SqlAuditTrail(session_factory),
            )

        if backend == "sheets":
            from clients.sheets_client import SheetsClient
            from stores.sheets_store import SheetsApplicationStore, SheetsAuditTrail, SheetsOtpStore

            client = SheetsClient(
                self.settings.GOOGLE_SHEET_ID,
                self.settings.GOOGLE_SERVICE_ACCOUNT_EMAIL,
                self.settings.GOOGLE_PRIVATE_KEY,
                reauth_seconds=self.settings.SHEETS_REAUTH_MINUTES * 60,
                timeout=self.settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
            )
            return SheetsApplicationStore(client), SheetsOtpStore(client), SheetsAuditTrail(client, self.clock)

        raise ConfigurationError(f"Unknown STORE_BACKEND '{backend}'.")

    def _ensure_stores(self):
        if self._applications is None or self._otps is None or self._audit_trail is None:
            applications, otps, audit_trail = self._build_stores()
            self._applications = self._applications or applications
            self._otps = self._otps or otps
            self._audit_trail = self._audit_trail or audit_trail

    def workflow(self) -> SignupWorkflow:
        with self._lock:
            if self._workflow is None:
                self._ensure_stores()
                mailer = self._mailer or build_mailer(self.settings)
                self._workflow = SignupWorkflow(
                    applications=self._applications,
                    otps=self._otps,
                    audit=AuditLogger(self._audit_trail, self.clock),
                    mailer=mailer,
                    settings=self.settings,
                    clock=self.clock,
                )
            return self._workflow

    def audit_logger(self) -> Optional[AuditLogger]:
        """Best-effort audit access for the request boundary; None if no trail can be built."""
        try:
            return self.workflow().audit
        except SignupError as e:
            logger.error(f"Audit trail unavailable: {e}")
            return None

    def email_validator(self) -> EmailValidationService:
        if self._email_validator is None:
            self._email_validator = EmailValidationService(
                self.settings.ZEROBOUNCE_API_KEY, timeout=self.settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
            )
        return self._email_validator


### 🚀 Request dependencies
def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_settings(container: ServiceContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_signup_workflow(container: ServiceContainer = Depends(get_container)) -> SignupWorkflow:
    return container.workflow()


def get_email_validator(container: ServiceContainer = Depends(get_container)) -> EmailValidationService:
    return container.email_validator()


def enforce_signup_rate_limit(request: Request, container: ServiceContainer = Depends(get_container)) -> None:
    ip = client_ip(request)
    limiter = container.rate_limiter
    decision = limiter.hit(ip)
    if decision.allowed:
        return

    audit = container.audit_logger()
    if audit is not None:
        audit.log_audit_event(None, AuditAction.error_rate_limited, {
            "clientIp": ip,
            "maxRequests": limiter.max_requests,
            "windowSeconds": limiter.window_seconds,
        })
    raise RateLimited(retry_after=decision.retry_after(limiter.clock()))
