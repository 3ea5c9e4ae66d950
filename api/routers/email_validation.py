from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import get_email_validator
from schemas.signup import MessageResponse, ValidateEmailResponse, ValidateEmailSchema
from services.email_validation_service import EmailValidationService

router = APIRouter(prefix="", tags=["Signup"])


@router.post(
    "/validate-email",
    response_model=ValidateEmailResponse,
    responses={400: {"model": ValidateEmailResponse}, 500: {"model": MessageResponse}},
)
def validate_email(
    payload: ValidateEmailSchema,
    validator: EmailValidationService = Depends(get_email_validator),
):
    check = validator.validate(payload.email)
    if check.valid:
        return ValidateEmailResponse(message="Email is valid!", valid=True)

    return JSONResponse(
        status_code=400,
        content={"message": f"Invalid email address: {check.reason}", "valid": False, "reason": check.reason},
    )
