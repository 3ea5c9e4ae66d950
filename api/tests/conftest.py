from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from dependencies import ServiceContainer
from main import create_app
from middleware.rate_limiter import FixedWindowRateLimiter
from services.signup_service import SignupWorkflow
from stores.memory_store import MemoryApplicationStore, MemoryAuditTrail, MemoryOtpStore
from utils.audit import AuditLogger
from utils.email import Mailer
from utils.errors import SendFailure


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


class RecordingMailer(Mailer):
    name = "recording"

    def __init__(self):
        self.sent = []
        self.error = None

    def send(self, to_email, subject, body, expires_display, **template_params):
        if self.error is not None:
            raise self.error
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "body": body,
            "expires": expires_display,
            "code": template_params.get("passcode"),
        })

    def last_code(self, email):
        for message in reversed(self.sent):
            if message["to"] == email:
                return message["code"]
        return None

    def fail_with(self, error=None):
        self.error = error or SendFailure(details={"provider": self.name})


@pytest.fixture
def settings():
    return Settings(
        STORE_BACKEND="memory",
        MAIL_PROVIDER="console",
        OTP_EXPIRY_MINUTES=15,
        OTP_CODE_MIN=100000,
        OTP_CODE_MAX=999999,
        OTP_LENGTH=6,
        DISPLAY_TIMEZONE="America/New_York",
        EBANKING_SIGNUP_URL="https://ebank.example.com/signup",
        RATE_LIMIT_MAX_REQUESTS=5,
        RATE_LIMIT_WINDOW_SECONDS=3600,
        CORS_ORIGINS="*",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def applications():
    return MemoryApplicationStore()


@pytest.fixture
def otps():
    return MemoryOtpStore()


@pytest.fixture
def audit_trail():
    return MemoryAuditTrail()


@pytest.fixture
def workflow(applications, otps, audit_trail, mailer, settings, clock):
    return SignupWorkflow(
        applications=applications,
        otps=otps,
        audit=AuditLogger(audit_trail, clock),
        mailer=mailer,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def container(settings, applications, otps, audit_trail, mailer, clock, monotonic):
    limiter = FixedWindowRateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        clock=monotonic,
    )
    return ServiceContainer(
        settings,
        applications=applications,
        otps=otps,
        audit_trail=audit_trail,
        mailer=mailer,
        rate_limiter=limiter,
        clock=clock,
    )


@pytest.fixture
def client(settings, container):
    app = create_app(settings, container)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
