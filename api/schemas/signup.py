from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SubmitApplicationSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional at the schema level so the workflow can audit missing fields
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    referral_code: Optional[str] = Field(None, alias="referralCode")


class SubmitApplicationResponse(BaseModel):
    message: str
    expiresAt: str


class VerifyOtpSchema(BaseModel):
    email: Optional[str] = None
    otp: Optional[Union[str, int]] = None  # forms post the code as a number or a string


class VerifyOtpResponse(BaseModel):
    message: str
    redirectUrl: str


class ValidateEmailSchema(BaseModel):
    email: Optional[str] = None


class ValidateEmailResponse(BaseModel):
    message: str
    valid: bool
    reason: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
