"""
Signup Service Configuration

Environment-based configuration for the signup funnel
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, default))


class Settings:
    """Signup service configuration settings"""

    def __init__(self, **overrides):
        # Store Settings
        self.STORE_BACKEND = os.getenv('STORE_BACKEND', 'database').lower()  # database | sheets | memory
        self.DATABASE_URL = os.getenv('DATABASE_URL')
        self.GOOGLE_SHEET_ID = os.getenv('GOOGLE_SHEET_ID')
        self.GOOGLE_SERVICE_ACCOUNT_EMAIL = os.getenv('GOOGLE_SERVICE_ACCOUNT_EMAIL')
        self.GOOGLE_PRIVATE_KEY = os.getenv('GOOGLE_PRIVATE_KEY')
        self.SHEETS_REAUTH_MINUTES = _int_env('SHEETS_REAUTH_MINUTES', 50)  # Google JWTs last 1 hour

        # Mail Settings
        self.MAIL_PROVIDER = os.getenv('MAIL_PROVIDER', 'mailgun').lower()
        self.FROM_EMAIL = os.getenv('FROM_EMAIL')
        self.MAILGUN_API_KEY = os.getenv('MAILGUN_API_KEY')
        self.MAILGUN_DOMAIN = os.getenv('MAILGUN_DOMAIN')
        self.SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
        self.SMTP_SERVER = os.getenv('SMTP_SERVER', 'smtppro.zoho.eu')
        self.SMTP_PORT = _int_env('SMTP_PORT', 465)
        self.SMTP_USERNAME = os.getenv('SMTP_USERNAME')
        self.SMTP_PASSWORD = os.getenv('SMTP_PASSWORD')
        self.EMAILJS_SERVICE_ID = os.getenv('EMAILJS_SERVICE_ID')
        self.EMAILJS_OTP_TEMPLATE_ID = os.getenv('EMAILJS_OTP_TEMPLATE_ID')
        self.EMAILJS_USER_ID = os.getenv('EMAILJS_USER_ID')
        self.EMAILJS_PRIVATE_KEY = os.getenv('EMAILJS_PRIVATE_KEY')

        # OTP Settings
        self.OTP_EXPIRY_MINUTES = _int_env('OTP_EXPIRY_MINUTES', 15)
        self.OTP_CODE_MIN = _int_env('OTP_CODE_MIN', 100000)  # codes with a leading zero are never issued
        self.OTP_CODE_MAX = _int_env('OTP_CODE_MAX', 999999)
        self.OTP_LENGTH = _int_env('OTP_LENGTH', 6)
        self.DISPLAY_TIMEZONE = os.getenv('DISPLAY_TIMEZONE', 'America/New_York')
        self.EBANKING_SIGNUP_URL = os.getenv('EBANKING_SIGNUP_URL', 'https://ebank.paynomadcapital.com/signup')

        # Rate Limit Settings (fixed window per client IP)
        self.RATE_LIMIT_MAX_REQUESTS = _int_env('RATE_LIMIT_MAX_REQUESTS', 5)
        self.RATE_LIMIT_WINDOW_SECONDS = _int_env('RATE_LIMIT_WINDOW_SECONDS', 3600)

        # External Calls
        self.EXTERNAL_CALL_TIMEOUT_SECONDS = float(os.getenv('EXTERNAL_CALL_TIMEOUT_SECONDS', 10))
        self.ZEROBOUNCE_API_KEY = os.getenv('ZEROBOUNCE_API_KEY')

        # App
        self.CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.ENVIRONMENT = os.getenv('ENVIRONMENT', 'development')

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        if self.OTP_CODE_MIN > self.OTP_CODE_MAX:
            raise ValueError("OTP_CODE_MIN must not exceed OTP_CODE_MAX")
        if self.OTP_CODE_MAX >= 10 ** self.OTP_LENGTH:
            raise ValueError(f"OTP_CODE_MAX does not fit in {self.OTP_LENGTH} digits")

    def get_cors_origins(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(',') if origin.strip()]

    def describe_environment(self) -> dict:
        """Report which settings are present, never their values."""
        def flag(value: Optional[str]) -> str:
            return "set" if value else "not set"

        return {
            "ENVIRONMENT": self.ENVIRONMENT,
            "STORE_BACKEND": self.STORE_BACKEND,
            "MAIL_PROVIDER": self.MAIL_PROVIDER,
            "DATABASE_URL": flag(self.DATABASE_URL),
            "GOOGLE_SHEET_ID": flag(self.GOOGLE_SHEET_ID),
            "GOOGLE_SERVICE_ACCOUNT_EMAIL": flag(self.GOOGLE_SERVICE_ACCOUNT_EMAIL),
            "GOOGLE_PRIVATE_KEY": flag(self.GOOGLE_PRIVATE_KEY),
            "FROM_EMAIL": flag(self.FROM_EMAIL),
            "ZEROBOUNCE_API_KEY": flag(self.ZEROBOUNCE_API_KEY),
            "OTP_EXPIRY_MINUTES": self.OTP_EXPIRY_MINUTES,
        }
