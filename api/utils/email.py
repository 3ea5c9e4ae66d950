import logging
import smtplib
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from utils.errors import ConfigurationError, ExternalTimeout, SendFailure

logger = logging.getLogger(__name__)

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"


def render_otp_email(first_name: str, otp_code: str, expires_display: str):
    """Subject, plain-text body and HTML body for the signup OTP email."""
    subject = f"{otp_code} is your PayNomad Capital verification code"
    body = f"""\
Hello {first_name},

Your One-Time Password (OTP) is:

{otp_code}

It will expire at {expires_display}. Please enter it to complete your registration.

If you did not request this code, please ignore this email.

Thanks,
The PayNomad Capital Team
"""
    html = (
        f"<p>Hello {first_name},</p>"
        f"<p>Your One-Time Password (OTP) is: <strong>{otp_code}</strong></p>"
        f"<p>It will expire at {expires_display}. Please enter it to complete your registration.</p>"
        "<p>If you did not request this code, please ignore this email.</p>"
    )
    return subject, body, html


class Mailer:
    """Sends one message. Raises SendFailure, ExternalTimeout or ConfigurationError."""

    name = "mailer"

    def send(self, to_email: str, subject: str, body: str, expires_display: str, **template_params):
        raise NotImplementedError


class MailgunMailer(Mailer):
    name = "mailgun"

    def __init__(self, api_key, domain, from_email, timeout=10):
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.timeout = timeout

    def send(self, to_email, subject, body, expires_display, **template_params):
        if not self.api_key or not self.domain or not self.from_email:
            raise ConfigurationError("Missing Mailgun configuration.")

        logger.info(f'Sending OTP email to {to_email} via Mailgun API')
        url = f"https://api.mailgun.net/v3/{self.domain}/messages"
        data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "text": body,
        }
        if template_params.get("html"):
            data["html"] = template_params["html"]

        try:
            response = requests.post(url, auth=("api", self.api_key), data=data, timeout=self.timeout)
        except requests.Timeout as e:
            raise ExternalTimeout("Timed out sending email via Mailgun.") from e
        except requests.RequestException as e:
            raise SendFailure(details={"provider": self.name, "error": str(e)[:300]}) from e

        if response.status_code != 200:
            logger.error(f"Mailgun error: {response.status_code} {response.text[:300]}")
            raise SendFailure(details={"provider": self.name, "status": response.status_code})
        logger.info("Email sent via Mailgun")


class SendGridMailer(Mailer):
    name = "sendgrid"

    def __init__(self, api_key, from_email, timeout=10):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout

    def send(self, to_email, subject, body, expires_display, **template_params):
        if not self.api_key or not self.from_email:
            raise ConfigurationError("Missing SendGrid configuration.")

        logger.info(f'Sending OTP email to {to_email} via SendGrid')
        message = Mail(
            from_email=self.from_email,
            to_emails=to_email,
            subject=subject,
            plain_text_content=body,
            html_content=template_params.get("html") or f"<pre>{body}</pre>",
        )
        try:
            sg = SendGridAPIClient(self.api_key)
            sg.client.timeout = self.timeout
            response = sg.send(message)
        except socket.timeout as e:
            raise ExternalTimeout("Timed out sending email via SendGrid.") from e
        except Exception as e:
            logger.error(f"SendGrid error: {str(e)}")
            raise SendFailure(details={"provider": self.name, "error": str(e)[:300]}) from e

        logger.debug(f"SendGrid response: {response.status_code}")
        if response.status_code >= 300:
            raise SendFailure(details={"provider": self.name, "status": response.status_code})


class SmtpMailer(Mailer):
    name = "smtp"

    def __init__(self, server, port, username, password, from_email=None, timeout=10):
        self.server = server
        self.port = int(port)
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.timeout = timeout

    def _connect(self):
        # 465 is implicit TLS (Zoho); anything else upgrades with STARTTLS
        if self.port == 465:
            return smtplib.SMTP_SSL(self.server, self.port, timeout=self.timeout)
        server = smtplib.SMTP(self.server, self.port, timeout=self.timeout)
        server.starttls()
        return server

    def send(self, to_email, subject, body, expires_display, **template_params):
        if not self.server or not self.username or not self.password:
            raise ConfigurationError("Missing SMTP configuration.")

        logger.info(f'Sending OTP email to {to_email} via SMTP {self.server}:{self.port}')

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email
        message.attach(MIMEText(body, "plain"))
        if template_params.get("html"):
            message.attach(MIMEText(template_params["html"], "html"))

        try:
            with self._connect() as server:
                server.login(self.username, self.password)
                server.sendmail(self.from_email, [to_email], message.as_string())
        except (socket.timeout, TimeoutError) as e:
            raise ExternalTimeout("Timed out sending email via SMTP.") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed: {e}")
            raise SendFailure(details={"provider": self.name, "error": str(e)[:300]}) from e


class EmailJsMailer(Mailer):
    """EmailJS REST API; the template renders the message from template params."""
    name = "emailjs"

    def __init__(self, service_id, template_id, user_id, private_key, timeout=10):
        self.service_id = service_id
        self.template_id = template_id
        self.user_id = user_id
        self.private_key = private_key
        self.timeout = timeout

    def send(self, to_email, subject, body, expires_display, **template_params):
        if not all([self.service_id, self.template_id, self.user_id, self.private_key]):
            raise ConfigurationError("Missing EmailJS configuration.")

        logger.info(f'Sending OTP email to {to_email} via EmailJS')
        payload = {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.user_id,
            "accessToken": self.private_key,
            "template_params": {
                "first_name": template_params.get("first_name", ""),
                "passcode": template_params.get("passcode", ""),
                "time": expires_display,
                "email": to_email,
                "subject": subject,
            },
        }
        try:
            response = requests.post(EMAILJS_SEND_URL, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise ExternalTimeout("Timed out sending email via EmailJS.") from e
        except requests.RequestException as e:
            raise SendFailure(details={"provider": self.name, "error": str(e)[:300]}) from e

        if not (response.status_code == 200 and response.text == "OK"):
            logger.error(f"EmailJS non-OK response: {response.status_code} {response.text[:100]}")
            raise SendFailure(details={
                "provider": self.name,
                "status": response.status_code,
                "response": response.text[:100],
            })


class ConsoleMailer(Mailer):
    """Development mailer: logs instead of sending."""
    name = "console"

    def send(self, to_email, subject, body, expires_display, **template_params):
        logger.info(f"[console mail] to={to_email} subject={subject!r} expires={expires_display}\n{body}")


class FallbackMailer(Mailer):
    """Try the primary provider, then the fallback (an API provider backed by SMTP)."""

    def __init__(self, primary: Mailer, fallback: Mailer):
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"

    def send(self, to_email, subject, body, expires_display, **template_params):
        try:
            return self.primary.send(to_email, subject, body, expires_display, **template_params)
        except (SendFailure, ExternalTimeout) as e:
            logger.error(f"{self.primary.name} failed: {e.details if isinstance(e, SendFailure) else e}")
            try:
                return self.fallback.send(to_email, subject, body, expires_display, **template_params)
            except (SendFailure, ExternalTimeout, ConfigurationError) as fallback_error:
                logger.error(f"{self.fallback.name} fallback failed too: {fallback_error}")
                raise e from fallback_error


def build_mailer(settings) -> Mailer:
    timeout = settings.EXTERNAL_CALL_TIMEOUT_SECONDS
    provider = settings.MAIL_PROVIDER

    smtp = SmtpMailer(
        settings.SMTP_SERVER, settings.SMTP_PORT, settings.SMTP_USERNAME,
        settings.SMTP_PASSWORD, settings.FROM_EMAIL, timeout=timeout,
    )

    if provider == "smtp":
        return smtp
    if provider == "console":
        return ConsoleMailer()
    if provider == "mailgun":
        primary = MailgunMailer(settings.MAILGUN_API_KEY, settings.MAILGUN_DOMAIN, settings.FROM_EMAIL, timeout=timeout)
    elif provider == "sendgrid":
        primary = SendGridMailer(settings.SENDGRID_API_KEY, settings.FROM_EMAIL, timeout=timeout)
    elif provider == "emailjs":
        primary = EmailJsMailer(
            settings.EMAILJS_SERVICE_ID, settings.EMAILJS_OTP_TEMPLATE_ID,
            settings.EMAILJS_USER_ID, settings.EMAILJS_PRIVATE_KEY, timeout=timeout,
        )
    else:
        raise ConfigurationError(f"Unknown MAIL_PROVIDER '{provider}'.")

    if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
        return FallbackMailer(primary, smtp)
    return primary
