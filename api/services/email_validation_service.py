import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from services.signup_service import EMAIL_PATTERN
from utils.errors import ConfigurationError, ExternalTimeout, SignupError, ValidationError

logger = logging.getLogger(__name__)

ZEROBOUNCE_URL = "https://api.zerobounce.net/v2/validate"


@dataclass
class EmailCheck:
    valid: bool
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)


class EmailValidationService:
    """Format check plus a ZeroBounce deliverability lookup, used before signup."""

    def __init__(self, api_key: Optional[str], timeout: float = 10, session=None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def validate(self, email: Optional[str]) -> EmailCheck:
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required.")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format.")
        if not self.api_key:
            logger.error("ZEROBOUNCE_API_KEY environment variable is not set")
            raise ConfigurationError("Email validation service is not properly configured.")

        try:
            response = self.session.get(
                ZEROBOUNCE_URL,
                params={"api_key": self.api_key, "email": email},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as e:
            raise ExternalTimeout("Timed out verifying the email address.") from e
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Email validation error: {e}")
            raise SignupError("Error verifying email.") from e

        if data.get("status") == "valid":
            return EmailCheck(valid=True, details=data)
        reason = data.get("sub_status") or data.get("status") or "Unknown reason"
        return EmailCheck(valid=False, reason=reason, details=data)
