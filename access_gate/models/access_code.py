"""
Access code model for user invitations
"""
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import BaseModel, as_utc, utcnow

GENERATION_ADMIN_INVITE = 'admin_invite'
GENERATION_USER_REQUEST = 'user_request'
GENERATION_TYPES = (GENERATION_ADMIN_INVITE, GENERATION_USER_REQUEST)

# Reasons a code cannot be redeemed
REASON_NOT_FOUND = 'not_found'
REASON_ALREADY_USED = 'already_used'
REASON_EXPIRED = 'expired'


class AccessCode(BaseModel):
    """Access code model for user invitation system"""
    __tablename__ = 'access_codes'

    code = Column(String(12), unique=True, nullable=False, index=True)
    is_used = Column(Boolean, default=False, nullable=False)
    used_by_email = Column(String(255))
    used_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    generated_by = Column(UUID(as_uuid=True), ForeignKey('users.id'), index=True)
    generation_type = Column(String(50), default=GENERATION_ADMIN_INVITE, nullable=False)  # admin_invite or user_request
    access_request_id = Column(UUID(as_uuid=True), ForeignKey('access_requests.id'), unique=True, index=True)

    # Relationships
    generated_by_user = relationship("User", back_populates="generated_access_codes", foreign_keys=[generated_by])
    access_request = relationship("AccessRequest", back_populates="access_code", foreign_keys=[access_request_id])

    def is_expired(self, now=None):
        return (now or utcnow()) >= as_utc(self.expires_at)

    def invalid_reason(self, now=None):
        """Why this code cannot be redeemed, or None if it can"""
        if self.is_used:
            return REASON_ALREADY_USED
        if self.is_expired(now):
            return REASON_EXPIRED
        return None
