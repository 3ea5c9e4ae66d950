from datetime import timedelta

import pytest

from models.records import ApplicationRecord, ApplicationStatus, OtpRecord
from utils.errors import (
    AlreadyVerified,
    ExternalTimeout,
    OtpExpired,
    OtpInvalid,
    OtpNotFound,
    SendFailure,
    ValidationError,
)


def wrong_code(code):
    return "100000" if code != "100000" else "100001"


class TestIssue:

    def test_new_signup_creates_pending_application_and_sends_code(self, workflow, applications, otps, mailer, clock):
        issued = workflow.issue("ann@x.com", "Ann", referral_code="REF1", last_name="Lee")

        records = applications.find_all("ann@x.com")
        assert len(records) == 1
        assert records[0].status == ApplicationStatus.pending
        assert records[0].first_name == "Ann"
        assert records[0].last_name == "Lee"
        assert records[0].referral_code == "REF1"

        assert issued.expires_at == clock() + timedelta(minutes=15)
        assert issued.expires_display == "10:15 AM"
        assert otps.find("ann@x.com").code == issued.code
        assert mailer.last_code("ann@x.com") == issued.code
        assert issued.code in mailer.sent[-1]["body"]

    def test_code_is_six_digits_within_configured_range(self, workflow):
        for _ in range(200):
            code = workflow.generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_code_keeps_leading_zeros_when_range_allows_them(self, workflow, settings):
        settings.OTP_CODE_MIN = 0
        settings.OTP_CODE_MAX = 9
        code = workflow.generate_code()
        assert len(code) == 6
        assert code.startswith("00000")

    @pytest.mark.parametrize("email,first_name", [
        ("", "Ann"),
        ("ann@x.com", ""),
        (None, None),
        ("not-an-email", "Ann"),
        ("ann@x", "Ann"),
        ("ann @x.com", "Ann"),
    ])
    def test_rejects_bad_input(self, workflow, applications, audit_trail, email, first_name):
        with pytest.raises(ValidationError):
            workflow.issue(email, first_name)
        assert applications.list_all() == []
        assert audit_trail.entries[-1].action.value == "error_validation"

    def test_resubmission_while_pending_updates_in_place(self, workflow, applications, clock):
        workflow.issue("ann@x.com", "Ann")
        first_id = applications.find("ann@x.com").id
        clock.advance(minutes=2)

        workflow.issue("ann@x.com", "Annie", referral_code="NEW", last_name="Lee")

        records = applications.find_all("ann@x.com")
        assert len(records) == 1
        assert records[0].id == first_id
        assert records[0].first_name == "Annie"
        assert records[0].referral_code == "NEW"
        assert records[0].updated_at == clock()

    def test_reissue_invalidates_previous_code(self, workflow, otps, mailer):
        old = workflow.issue("ann@x.com", "Ann").code
        new = workflow.issue("ann@x.com", "Ann").code

        assert len(otps.find_all("ann@x.com")) == 1
        if old != new:
            with pytest.raises((OtpInvalid, OtpNotFound)):
                workflow.verify("ann@x.com", old)
        assert workflow.verify("ann@x.com", new).redirect_url

    def test_reissue_removes_duplicate_otp_rows(self, workflow, otps, clock):
        for code in ("111111", "222222"):
            otps.insert(OtpRecord(email="ann@x.com", code=code, expires_at=clock() + timedelta(minutes=5)))

        issued = workflow.issue("ann@x.com", "Ann")

        remaining = otps.find_all("ann@x.com")
        assert len(remaining) == 1
        assert remaining[0].code == issued.code
        assert remaining[0].created_at == clock()

    def test_issue_sweeps_expired_otps_of_other_emails(self, workflow, otps, clock):
        otps.insert(OtpRecord(email="old@x.com", code="123456", expires_at=clock() - timedelta(minutes=1)))
        otps.insert(OtpRecord(email="live@x.com", code="654321", expires_at=clock() + timedelta(minutes=10)))

        workflow.issue("ann@x.com", "Ann")

        assert otps.find("old@x.com") is None
        assert otps.find("live@x.com") is not None

    def test_already_verified_is_rejected_and_untouched(self, workflow, applications, mailer):
        issued = workflow.issue("ann@x.com", "Ann")
        workflow.verify("ann@x.com", issued.code)
        before = applications.find("ann@x.com")
        sent_before = len(mailer.sent)

        with pytest.raises(AlreadyVerified):
            workflow.issue("ann@x.com", "Mallory", referral_code="EVIL")

        after = applications.find("ann@x.com")
        assert after == before
        assert after.first_name == "Ann"
        assert len(mailer.sent) == sent_before

    def test_send_failure_keeps_application_and_otp(self, workflow, applications, otps, mailer, audit_trail):
        mailer.fail_with()

        with pytest.raises(SendFailure):
            workflow.issue("ann@x.com", "Ann")

        application = applications.find("ann@x.com")
        assert application.status == ApplicationStatus.pending
        assert application.note == "EmailFailed"
        assert otps.find("ann@x.com") is not None
        assert "error_otp_send" in audit_trail.actions_for("ann@x.com")

    def test_resend_after_failure_clears_annotation(self, workflow, applications, mailer):
        mailer.fail_with(ExternalTimeout())
        with pytest.raises(ExternalTimeout):
            workflow.issue("ann@x.com", "Ann")

        mailer.error = None
        workflow.issue("ann@x.com", "Ann")

        assert applications.find("ann@x.com").note is None
        assert len(applications.find_all("ann@x.com")) == 1

    def test_audit_trail_for_new_signup(self, workflow, audit_trail):
        workflow.issue("ann@x.com", "Ann")
        assert audit_trail.actions_for("ann@x.com") == ["signup_attempt_new", "otp_generated", "otp_sent"]


class TestVerify:

    def test_valid_code_marks_application_verified(self, workflow, applications, otps, clock):
        issued = workflow.issue("ann@x.com", "Ann")
        clock.advance(minutes=3)

        result = workflow.verify("ann@x.com", issued.code)

        assert result.redirect_url == "https://ebank.example.com/signup"
        assert result.application_updated is True
        application = applications.find("ann@x.com")
        assert application.status == ApplicationStatus.verified
        assert application.verified_at == clock()
        assert otps.find("ann@x.com") is None

    def test_code_is_single_use(self, workflow):
        issued = workflow.issue("ann@x.com", "Ann")
        workflow.verify("ann@x.com", issued.code)

        with pytest.raises(OtpNotFound):
            workflow.verify("ann@x.com", issued.code)

    def test_mismatch_keeps_otp_for_retry(self, workflow, otps):
        issued = workflow.issue("ann@x.com", "Ann")

        with pytest.raises(OtpInvalid):
            workflow.verify("ann@x.com", wrong_code(issued.code))

        assert otps.find("ann@x.com") is not None
        assert workflow.verify("ann@x.com", issued.code).application_updated

    @pytest.mark.parametrize("submitted", ["１２３４５６", "é", "12345€"])
    def test_non_ascii_code_is_a_mismatch(self, workflow, otps, audit_trail, submitted):
        workflow.issue("ann@x.com", "Ann")

        with pytest.raises(OtpInvalid):
            workflow.verify("ann@x.com", submitted)

        assert otps.find("ann@x.com") is not None
        assert audit_trail.actions_for("ann@x.com")[-1] == "otp_invalid"

    def test_expired_code_is_deleted_on_read(self, workflow, otps, clock):
        issued = workflow.issue("ann@x.com", "Ann")
        clock.advance(minutes=15, seconds=1)

        with pytest.raises(OtpExpired):
            workflow.verify("ann@x.com", issued.code)
        assert otps.find("ann@x.com") is None

        with pytest.raises(OtpNotFound):
            workflow.verify("ann@x.com", issued.code)

    def test_code_valid_at_exact_expiry_instant(self, workflow, clock):
        issued = workflow.issue("ann@x.com", "Ann")
        clock.advance(minutes=15)
        assert workflow.verify("ann@x.com", issued.code).application_updated

    def test_unknown_email_is_not_found(self, workflow, audit_trail):
        with pytest.raises(OtpNotFound):
            workflow.verify("nobody@x.com", "123456")
        assert audit_trail.actions_for("nobody@x.com") == ["otp_not_found"]

    @pytest.mark.parametrize("email,code", [("", "123456"), ("ann@x.com", ""), (None, None)])
    def test_missing_fields(self, workflow, email, code):
        with pytest.raises(ValidationError):
            workflow.verify(email, code)

    def test_valid_code_without_pending_application_still_succeeds(self, workflow, otps, audit_trail, clock):
        otps.insert(OtpRecord(email="ghost@x.com", code="424242", expires_at=clock() + timedelta(minutes=5)))

        result = workflow.verify("ghost@x.com", "424242")

        assert result.application_updated is False
        assert audit_trail.actions_for("ghost@x.com") == ["verify_no_pending_application", "otp_verified"]

    def test_most_recent_otp_row_wins(self, workflow, otps, clock):
        otps.insert(OtpRecord(email="ann@x.com", code="111111", expires_at=clock() + timedelta(minutes=5),
                              created_at=clock() - timedelta(minutes=10)))
        otps.insert(OtpRecord(email="ann@x.com", code="222222", expires_at=clock() + timedelta(minutes=5),
                              created_at=clock() - timedelta(minutes=1)))

        with pytest.raises(OtpInvalid):
            workflow.verify("ann@x.com", "111111")
        assert workflow.verify("ann@x.com", "222222").redirect_url

    def test_most_recent_pending_application_is_verified(self, workflow, applications, otps, clock):
        stale = applications.insert(ApplicationRecord(
            email="ann@x.com", first_name="Old", created_at=clock() - timedelta(days=2)))
        fresh = applications.insert(ApplicationRecord(
            email="ann@x.com", first_name="New", created_at=clock() - timedelta(hours=1)))
        otps.insert(OtpRecord(email="ann@x.com", code="333333", expires_at=clock() + timedelta(minutes=5)))

        workflow.verify("ann@x.com", "333333")

        by_id = {r.id: r for r in applications.find_all("ann@x.com")}
        assert by_id[fresh.id].status == ApplicationStatus.verified
        assert by_id[stale.id].status == ApplicationStatus.pending

    def test_full_audit_sequence(self, workflow, audit_trail):
        issued = workflow.issue("ann@x.com", "Ann")
        with pytest.raises(OtpInvalid):
            workflow.verify("ann@x.com", wrong_code(issued.code))
        workflow.verify("ann@x.com", issued.code)

        assert audit_trail.actions_for("ann@x.com") == [
            "signup_attempt_new", "otp_generated", "otp_sent", "otp_invalid", "otp_verified",
        ]
