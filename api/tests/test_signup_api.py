from fastapi.testclient import TestClient

from config.settings import Settings
from dependencies import ServiceContainer
from main import create_app
from models.records import ApplicationStatus
from utils.errors import ConfigurationError


def submit(client, ip="198.51.100.1", **body):
    payload = {"firstName": "Ann", "email": "ann@x.com"}
    payload.update(body)
    return client.post("/submit-application", json=payload, headers={"X-Forwarded-For": ip})


def test_signup_and_verify_scenario(client, mailer, applications, clock):
    response = submit(client)
    assert response.status_code == 200
    body = response.json()
    assert body["expiresAt"] == "10:15 AM"
    assert "check your email" in body["message"]

    code = mailer.last_code("ann@x.com")
    wrong = "100000" if code != "100000" else "100001"

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": wrong})
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid OTP")

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": code})
    assert response.status_code == 200
    assert response.json() == {
        "message": "OTP verified successfully.",
        "redirectUrl": "https://ebank.example.com/signup",
    }
    assert applications.find("ann@x.com").status == ApplicationStatus.verified

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": code})
    assert response.status_code == 400
    assert response.json()["message"].startswith("OTP not found")


def test_fullwidth_digits_are_rejected_as_invalid(client, mailer, audit_trail):
    submit(client)

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": "１２３４５６"})

    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid OTP")
    assert "error_verify_critical" not in audit_trail.actions_for("ann@x.com")

    code = mailer.last_code("ann@x.com")
    assert client.post("/verify-otp", json={"email": "ann@x.com", "otp": code}).status_code == 200


def test_expired_code_scenario(client, mailer, clock):
    submit(client)
    code = mailer.last_code("ann@x.com")
    clock.advance(minutes=16)

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": code})
    assert response.status_code == 400
    assert response.json()["message"] == "OTP has expired. Please request a new one."

    response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": code})
    assert response.json()["message"].startswith("OTP not found")


def test_verified_email_gets_conflict(client, mailer, applications):
    submit(client)
    client.post("/verify-otp", json={"email": "ann@x.com", "otp": mailer.last_code("ann@x.com")})
    verified = applications.find("ann@x.com")

    response = submit(client, firstName="Someone", referralCode="X")

    assert response.status_code == 409
    assert "already verified" in response.json()["message"]
    assert applications.find("ann@x.com") == verified


def test_repeated_pending_submission_keeps_one_record(client, applications):
    for name in ("Ann", "Annie", "Anna"):
        assert submit(client, firstName=name).status_code == 200
    records = applications.find_all("ann@x.com")
    assert len(records) == 1
    assert records[0].first_name == "Anna"


def test_validation_errors(client):
    response = client.post("/submit-application", json={"email": "ann@x.com"})
    assert response.status_code == 400
    assert response.json() == {"message": "First Name and Email are required."}

    response = submit(client, email="nope")
    assert response.status_code == 400
    assert response.json() == {"message": "Please provide a valid email address."}

    response = client.post("/verify-otp", json={"email": "ann@x.com"})
    assert response.status_code == 400
    assert response.json() == {"message": "Email and OTP are required."}


def test_malformed_body_is_bad_request(client):
    response = client.post("/submit-application", content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid request body."}


def test_rate_limit_per_client_ip(client, monotonic, audit_trail):
    for i in range(5):
        assert submit(client, ip="203.0.113.9", email=f"user{i}@x.com").status_code == 200

    response = submit(client, ip="203.0.113.9", email="user5@x.com")
    assert response.status_code == 429
    assert response.json() == {"message": "Too many requests. Please try again later."}
    assert response.headers["Retry-After"] == "3600"
    assert audit_trail.entries[-1].action.value == "error_rate_limited"

    # another client is unaffected
    assert submit(client, ip="203.0.113.10", email="other@x.com").status_code == 200

    monotonic.advance(3601)
    assert submit(client, ip="203.0.113.9", email="user5@x.com").status_code == 200


def test_verify_is_not_rate_limited(client):
    for _ in range(10):
        response = client.post("/verify-otp", json={"email": "ann@x.com", "otp": "123456"})
        assert response.status_code == 400


def test_send_failure_surfaces_safe_message_and_keeps_records(client, mailer, applications, otps):
    mailer.fail_with()

    response = submit(client)

    assert response.status_code == 500
    assert response.json()["message"].startswith("Failed to send verification email:")
    assert applications.find("ann@x.com").status == ApplicationStatus.pending
    assert otps.find("ann@x.com") is not None


def test_external_timeout_maps_to_gateway_timeout(client, mailer):
    from utils.errors import ExternalTimeout
    mailer.fail_with(ExternalTimeout())

    response = submit(client)

    assert response.status_code == 504


def test_configuration_error_is_surfaced_verbatim(settings):
    settings.STORE_BACKEND = "database"
    settings.DATABASE_URL = None
    app = create_app(settings, ServiceContainer(settings))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = submit(client)

    assert response.status_code == 500
    assert response.json() == {"message": "Server configuration error: DATABASE_URL is not set."}


def test_unexpected_errors_are_hidden_and_audited(client, applications, audit_trail):
    def explode(email):
        raise RuntimeError("secret connection string leaked")
    applications.find = explode

    response = submit(client)

    assert response.status_code == 500
    assert "secret" not in response.json()["message"]
    entry = audit_trail.entries[-1]
    assert entry.action.value == "error_submit_critical"
    assert entry.details["errorType"] == "RuntimeError"


def test_mailer_configuration_error_is_surfaced(client, mailer):
    mailer.fail_with(ConfigurationError("Missing EmailJS configuration."))

    response = submit(client)

    assert response.status_code == 500
    assert response.json()["message"] == "Server configuration error: Missing EmailJS configuration."


def test_cors_preflight(client):
    response = client.options(
        "/submit-application",
        headers={
            "Origin": "https://www.paynomadcapital.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_status_reports_presence_not_values():
    settings = Settings(STORE_BACKEND="memory", DATABASE_URL="postgresql://user:pw@db/app", ENVIRONMENT="staging")
    with TestClient(create_app(settings)) as client:
        response = client.get("/status")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["environment"]["DATABASE_URL"] == "set"
    assert body["environment"]["ENVIRONMENT"] == "staging"
    assert "pw" not in response.text
