"""
Access request model for user-initiated access requests
"""
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from .base import BaseModel

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_REJECTED = 'rejected'
REQUEST_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)


class AccessRequest(BaseModel):
    """User-initiated access request model"""
    __tablename__ = 'access_requests'

    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    message = Column(Text)
    status = Column(String(50), default=STATUS_PENDING, nullable=False)  # pending, approved, rejected
    requested_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_at = Column(DateTime(timezone=True))
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey('users.id'))
    rejection_reason = Column(Text)

    # Relationships
    reviewer = relationship("User", back_populates="reviewed_requests", foreign_keys=[reviewed_by])
    access_code = relationship("AccessCode", back_populates="access_request", uselist=False)

    __table_args__ = (
        # At most one pending request per normalized email
        Index(
            'uq_access_requests_pending_email',
            'email',
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def status_dict(self):
        """Public view used by the request-status lookup"""
        data = self.to_dict()
        return {
            'request_id': data['id'],
            'status': self.status,
            'requested_at': data['requested_at'],
            'reviewed_at': data['reviewed_at'],
        }
