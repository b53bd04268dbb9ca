"""
Verification model for Better Auth magic links and email verification
"""
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from .base import BaseModel, as_utc, utcnow


class Verification(BaseModel):
    """Verification model for magic links and email verification (matches Better Auth schema)"""
    __tablename__ = 'verification'

    identifier = Column(String, nullable=False)
    value = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('identifier', 'value', name='verification_identifier_value_key'),
    )

    def to_dict(self):
        """Enhanced to_dict"""
        result = super().to_dict()
        # The token value is a bearer secret
        result.pop('value', None)
        return result

    def is_valid(self, now=None):
        """Check if verification is still valid"""
        return (now or utcnow()) < as_utc(self.expires_at)
