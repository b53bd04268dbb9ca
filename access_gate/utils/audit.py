"""
Audit logging utilities for access request and access code state changes
"""
from flask import g, has_request_context, current_app
from access_gate import db
from typing import Optional, Dict, Any


def create_audit_log(
    table_name: str,
    record_id: Any,
    action: str,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    user_email: Optional[str] = None,
    reason: Optional[str] = None
):
    """
    Create an audit log entry for any database operation.

    The entry is added to the current session; the caller commits it together
    with the change it describes.

    Args:
        table_name: Name of the table being modified
        record_id: ID of the record being modified
        action: Type of action (CREATE, UPDATE, APPROVE, REJECT, REDEEM, ...)
        old_values: Dictionary of old values (for UPDATE)
        new_values: Dictionary of new values (for CREATE/UPDATE)
        user_email: Email of user performing action (auto-detected if not provided)
        reason: Optional reason for the change

    Example:
        create_audit_log(
            table_name='access_requests',
            record_id=access_request.id,
            action='APPROVE',
            old_values={'status': 'pending'},
            new_values={'status': 'approved'},
            user_email=principal.email,
        )
    """
    from access_gate.models.audit_log import AuditLog

    # Get user email from request context if not provided
    if not user_email and has_request_context():
        user_email = getattr(g, 'current_user_email', None)

    changed_fields = []
    if old_values and new_values:
        changed_fields = [
            field for field in new_values.keys()
            if old_values.get(field) != new_values.get(field)
        ]

    audit_entry = AuditLog(
        table_name=table_name,
        record_id=record_id,
        action=action,
        old_values=old_values,
        new_values=new_values,
        changed_fields=changed_fields,
        changed_by=user_email or 'system',
        change_reason=reason
    )

    # Add to session (caller should handle commit)
    db.session.add(audit_entry)
    return audit_entry


def audit_bulk_operation(
    table_name: str,
    action: str,
    record_count: int,
    summary: Optional[Dict] = None,
    user_email: Optional[str] = None,
    reason: Optional[str] = None
):
    """
    Create an audit log entry for bulk operations.

    Args:
        table_name: Name of the table being modified
        action: Type of action (BULK_APPROVE, ...)
        record_count: Number of records affected
        summary: Optional dictionary with operation summary
        user_email: Email of user performing action
        reason: Optional reason for the bulk operation
    """
    new_values = {
        'bulk_operation': True,
        'records_affected': record_count,
        **(summary or {})
    }

    current_app.logger.info(f"Bulk {action} on {table_name}: {record_count} record(s)")

    return create_audit_log(
        table_name=table_name,
        record_id=None,  # No specific record for bulk ops
        action=action,
        new_values=new_values,
        user_email=user_email,
        reason=reason or f'Bulk operation: {record_count} records'
    )
