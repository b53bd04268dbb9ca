"""
Account model for Better Auth authentication providers
"""
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from werkzeug.security import check_password_hash
from .base import BaseModel

CREDENTIAL_PROVIDER = 'credential'


class Account(BaseModel):
    """Account model for authentication providers (matches Better Auth schema)"""
    __tablename__ = 'account'

    user_id = Column(UUID(as_uuid=True), ForeignKey('users.id'), nullable=False, index=True)
    account_id = Column(String, nullable=False)
    provider_id = Column(String, nullable=False)
    access_token = Column(Text)
    refresh_token = Column(Text)
    id_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    password = Column(String(255))  # Hashed password for credential provider

    # Relationships
    user = relationship("User", back_populates="accounts")

    def to_dict(self):
        """Enhanced to_dict"""
        result = super().to_dict()
        # Don't include secrets in dict for security
        for field in ('password', 'access_token', 'refresh_token', 'id_token'):
            result.pop(field, None)
        return result

    def check_password(self, password):
        if not self.password:
            return False
        return check_password_hash(self.password, password)

    @classmethod
    def find_credential(cls, email):
        """Find the credential account for an email address"""
        return cls.query.filter_by(
            provider_id=CREDENTIAL_PROVIDER,
            account_id=email.strip().lower()
        ).first()
