"""
Audit log model
"""
from sqlalchemy.dialects.postgresql import UUID, JSONB, ARRAY
from sqlalchemy import Column, String, Text, DateTime, JSON, func
from .base import BaseModel

# JSONB/ARRAY on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONVariant = JSON().with_variant(JSONB(), 'postgresql')
TextArray = JSON().with_variant(ARRAY(Text), 'postgresql')


class AuditLog(BaseModel):
    """Audit trail"""
    __tablename__ = 'audit_log'

    table_name = Column(String(100), nullable=False)
    record_id = Column(UUID(as_uuid=True))  # NULL for bulk operations
    action = Column(String(50), nullable=False)
    old_values = Column(JSONVariant)
    new_values = Column(JSONVariant)
    changed_fields = Column(TextArray)
    changed_by = Column(String(255))
    changed_at = Column(DateTime(timezone=True), server_default=func.now())
    change_reason = Column(Text)
