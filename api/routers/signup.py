import logging

from fastapi import APIRouter, Depends

from dependencies import enforce_signup_rate_limit, get_signup_workflow
from models.records import AuditAction
from schemas.signup import (
    MessageResponse,
    SubmitApplicationResponse,
    SubmitApplicationSchema,
    VerifyOtpResponse,
    VerifyOtpSchema,
)
from services.signup_service import SignupWorkflow
from utils.errors import ExternalTimeout, SignupError, StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["Signup"])

ERROR_RESPONSES = {
    400: {"model": MessageResponse},
    500: {"model": MessageResponse},
    504: {"model": MessageResponse},
}


### 🚀 Submit application and send OTP
@router.post(
    "/submit-application",
    response_model=SubmitApplicationResponse,
    responses={**ERROR_RESPONSES, 409: {"model": MessageResponse}, 429: {"model": MessageResponse}},
    dependencies=[Depends(enforce_signup_rate_limit)],
)
def submit_application(
    payload: SubmitApplicationSchema,
    workflow: SignupWorkflow = Depends(get_signup_workflow),
):
    try:
        issued = workflow.issue(
            email=payload.email,
            first_name=payload.first_name,
            referral_code=payload.referral_code,
            last_name=payload.last_name,
        )
    except (StoreUnavailable, ExternalTimeout) as e:
        workflow.audit.log_critical_error(payload.email, AuditAction.error_submit_critical, e)
        raise
    except SignupError:
        raise
    except Exception as e:
        logger.exception(f"Error in submit-application for {payload.email}")
        workflow.audit.log_critical_error(payload.email, AuditAction.error_submit_critical, e)
        raise

    return SubmitApplicationResponse(
        message="Application processed. Please check your email for the OTP.",
        expiresAt=issued.expires_display,
    )


### 🚀 Verify OTP
@router.post("/verify-otp", response_model=VerifyOtpResponse, responses=ERROR_RESPONSES)
def verify_otp(
    payload: VerifyOtpSchema,
    workflow: SignupWorkflow = Depends(get_signup_workflow),
):
    try:
        result = workflow.verify(payload.email, payload.otp)
    except (StoreUnavailable, ExternalTimeout) as e:
        workflow.audit.log_critical_error(payload.email, AuditAction.error_verify_critical, e)
        raise
    except SignupError:
        raise
    except Exception as e:
        logger.exception(f"Error in verify-otp for {payload.email}")
        workflow.audit.log_critical_error(payload.email, AuditAction.error_verify_critical, e)
        raise

    return VerifyOtpResponse(message="OTP verified successfully.", redirectUrl=result.redirect_url)
