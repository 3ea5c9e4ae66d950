# Models package - import all ORM models so Base.metadata sees every table
from models.application import Application
from models.pending_signup import PendingSignupOtp
from models.audit_log import AuditLog

__all__ = ['Application', 'PendingSignupOtp', 'AuditLog']
