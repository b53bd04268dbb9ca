"""
SQLAlchemy models for the access-gated onboarding workflow
"""
from .base import BaseModel
from .user import User
from .account import Account
from .verification import Verification
from .access_request import AccessRequest
from .access_code import AccessCode
from .audit_log import AuditLog

__all__ = [
    'BaseModel',
    'User',
    'Account',
    'Verification',
    'AccessRequest',
    'AccessCode',
    'AuditLog',
]
