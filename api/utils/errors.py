"""Signup error kinds, converted to JSON responses at the request boundary"""
from fastapi import status


# Messages starting with these are shown to the client verbatim
SAFE_MESSAGE_PREFIXES = (
    "Server configuration error:",
    "Failed to send verification email:",
)


class SignupError(Exception):
    """Base class for every failure the signup workflow reports"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "An internal error occurred. Please try again later."

    def __init__(self, message: str = None, details: dict = None):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(SignupError):
    """400 Bad or missing input"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request."


class AlreadyVerified(SignupError):
    """409 Application is already verified"""
    status_code = status.HTTP_409_CONFLICT
    message = "This email address is already verified. You can proceed to the e-banking portal."


class OtpNotFound(SignupError):
    """400 No OTP stored for the email"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "OTP not found. It may have expired or already been used. Please request a new one if needed."


class OtpInvalid(SignupError):
    """400 Submitted code does not match"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid OTP. Please check the code and try again."


class OtpExpired(SignupError):
    """400 Code matched but is past its expiry"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "OTP has expired. Please request a new one."


class SendFailure(SignupError):
    """500 Mail dispatch failed; application and OTP are kept"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = (
        "Failed to send verification email: your application was saved, "
        "please submit the form again to receive a new code."
    )


class StoreUnavailable(SignupError):
    """500 Backing store unreachable or misconfigured"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "An internal error occurred. Our team has been notified. Please try again later."


class ConfigurationError(StoreUnavailable):
    """500 Missing or invalid server configuration"""

    def __init__(self, message: str, details: dict = None):
        if not message.startswith("Server configuration error:"):
            message = f"Server configuration error: {message}"
        super().__init__(message, details)


class RateLimited(SignupError):
    """429 Too many requests from one client"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests. Please try again later."

    def __init__(self, message: str = None, retry_after: int = None):
        super().__init__(message)
        self.retry_after = retry_after


class ExternalTimeout(SignupError):
    """504 An external call exceeded its time budget"""
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    message = "An upstream service did not respond in time. Please try again."


def client_message(exc: Exception, fallback: str) -> str:
    """Pick the message a client is allowed to see for *exc*."""
    text = str(exc)
    if text.startswith(SAFE_MESSAGE_PREFIXES):
        return text
    if isinstance(exc, SignupError) and not isinstance(exc, StoreUnavailable):
        return exc.message
    return fallback
