"""
Base model with common functionality
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy import Column, DateTime, func, inspect
from access_gate import db


def utcnow():
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _serialize(value):
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


class BaseModel(db.Model):
    """Base model class with common fields and methods (Better Auth compatible)"""
    __abstract__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        """Convert model instance to dictionary"""
        result = {}
        for column in self.__table__.columns:
            # Use column.key for attribute access to support differing
            # Python attribute names vs database column names
            result[column.name] = _serialize(getattr(self, column.key))
        return result

    def _committed_values(self):
        """Column values as last loaded from the database"""
        state = inspect(self)
        result = self.to_dict()
        for column in self.__table__.columns:
            history = state.attrs[column.key].history
            if history.deleted:
                result[column.name] = _serialize(history.deleted[0])
        return result

    def save(self, user_email=None, reason=None):
        """Save the model instance with audit logging"""
        old_values = None
        action = 'CREATE'

        if inspect(self).persistent:
            old_values = self._committed_values()
            action = 'UPDATE'

        db.session.add(self)
        db.session.flush()  # Flush to get the ID but don't commit yet

        from access_gate.utils.audit import create_audit_log
        create_audit_log(
            table_name=self.__tablename__,
            record_id=self.id,
            action=action,
            old_values=old_values,
            new_values=self.to_dict(),
            user_email=user_email,
            reason=reason
        )

        # Commit everything together
        db.session.commit()
        return self

    @classmethod
    def find_by_id(cls, id):
        """Find a record by ID"""
        if not isinstance(id, uuid.UUID):
            try:
                id = uuid.UUID(str(id))
            except (ValueError, TypeError):
                return None
        return db.session.get(cls, id)
