import logging
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from models.records import AuditAction, AuditEntry
from stores.base import AuditTrail
from utils.clock import utcnow
from utils.errors import SignupError

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Write-only audit trail for the signup funnel.

    A failed audit write is logged and never fails the request that caused it.
    """

    def __init__(self, trail: AuditTrail, clock: Callable[[], datetime] = utcnow):
        self.trail = trail
        self.clock = clock

    def log_audit_event(
        self,
        email: Optional[str],
        action: AuditAction,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Append one audit entry.

        Args:
            email: Applicant email the event concerns (may be unknown)
            action: Entry from the fixed AuditAction vocabulary
            details: Additional context, JSON-serializable
        """
        entry = AuditEntry(
            email=email or "unknown_email",
            action=action,
            details=details or {},
            timestamp=self.clock(),
        )
        log = logger.warning if action.value.startswith("error_") else logger.info
        log(f"audit {entry.action.value} email={entry.email}")
        try:
            self.trail.append(entry)
        except SignupError as e:
            logger.error(f"Failed to write audit entry {action.value} for {entry.email}: {e.details or e}")
        except Exception:
            logger.exception(f"Failed to write audit entry {action.value} for {entry.email}")

    def log_critical_error(self, email: Optional[str], action: AuditAction, exc: BaseException) -> None:
        """Record an unexpected failure with a truncated stack sample."""
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self.log_audit_event(email, action, {
            "error": str(exc)[:300],
            "errorType": type(exc).__name__,
            "stackSample": stack[:500],
        })
