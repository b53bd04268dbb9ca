"""
Access request store

Requests move pending -> approved or pending -> rejected exactly once. Review
transitions are conditional UPDATEs guarded on ``status = 'pending'`` so two
concurrent reviewers cannot both win.
"""
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from access_gate import db
from access_gate.exceptions import (
    AccessRequestNotFound,
    AccountAlreadyExists,
    AlreadyReviewed,
    DuplicatePendingRequest,
    ValidationError,
)
from access_gate.models import AccessRequest, User
from access_gate.models.access_request import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from access_gate.models.base import utcnow
from access_gate.services.metrics_service import MetricsService
from access_gate.utils.audit import audit_bulk_operation, create_audit_log
from access_gate.utils.response import normalize_email, parse_uuid


class AccessRequestStore:
    """Persistence and lifecycle transitions of access requests"""

    def submit(self, email, name, message=None):
        """
        Record a new pending access request

        Raises:
            DuplicatePendingRequest: a pending request exists for the email
            AccountAlreadyExists: a user with the email exists
        """
        email = normalize_email(email)

        if AccessRequest.query.filter_by(email=email, status=STATUS_PENDING).first():
            raise DuplicatePendingRequest()

        if User.find_by_email(email):
            raise AccountAlreadyExists('An account with this email already exists')

        access_request = AccessRequest(
            email=email,
            name=name.strip(),
            message=(message or '').strip() or None,
            status=STATUS_PENDING,
            requested_at=utcnow(),
        )

        try:
            access_request.save(user_email=email, reason='Access request submitted')
        except IntegrityError as e:
            db.session.rollback()
            # Partial unique index on pending email
            raise DuplicatePendingRequest() from e

        MetricsService.track_access_request_submitted()
        current_app.logger.info(f"Access request {access_request.id} submitted for {email}")
        return access_request

    def get(self, request_id):
        access_request = AccessRequest.find_by_id(request_id)
        if access_request is None:
            raise AccessRequestNotFound()
        return access_request

    def latest_for_email(self, email):
        """Most recent request for an email, or None"""
        return (
            AccessRequest.query
            .filter_by(email=normalize_email(email))
            .order_by(AccessRequest.requested_at.desc())
            .first()
        )

    def approve(self, request_id, reviewer_id, reviewer_email=None):
        return self._review(request_id, reviewer_id, STATUS_APPROVED, reviewer_email=reviewer_email)

    def reject(self, request_id, reviewer_id, reason=None, reviewer_email=None):
        return self._review(request_id, reviewer_id, STATUS_REJECTED, reason=reason, reviewer_email=reviewer_email)

    def _review(self, request_id, reviewer_id, new_status, reason=None, reviewer_email=None):
        request_uuid = parse_uuid(request_id)
        if request_uuid is None:
            raise AccessRequestNotFound()

        values = {
            'status': new_status,
            'reviewed_at': utcnow(),
            'reviewed_by': self._reviewer_uuid(reviewer_id),
        }
        if new_status == STATUS_REJECTED:
            values['rejection_reason'] = (reason or '').strip() or None

        result = db.session.execute(
            update(AccessRequest)
            .where(AccessRequest.id == request_uuid, AccessRequest.status == STATUS_PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            db.session.rollback()
            existing = db.session.get(AccessRequest, request_uuid)
            if existing is None:
                raise AccessRequestNotFound()
            raise AlreadyReviewed(status=existing.status)

        action = 'APPROVE' if new_status == STATUS_APPROVED else 'REJECT'
        create_audit_log(
            table_name=AccessRequest.__tablename__,
            record_id=request_uuid,
            action=action,
            old_values={'status': STATUS_PENDING},
            new_values={'status': new_status, 'rejection_reason': values.get('rejection_reason')},
            user_email=reviewer_email,
            reason=values.get('rejection_reason'),
        )
        db.session.commit()

        MetricsService.track_access_request_reviewed(new_status)
        current_app.logger.info(f"Access request {request_uuid} {new_status} by {reviewer_email or reviewer_id}")

        access_request = db.session.get(AccessRequest, request_uuid, populate_existing=True)
        return access_request

    def batch_approve(self, request_ids, reviewer_id, reviewer_email=None):
        """
        Approve every pending request among request_ids in one UPDATE

        Non-pending, unknown and malformed ids are skipped.

        Returns:
            Number of requests that moved to approved
        """
        request_uuids = [uuid for uuid in (parse_uuid(rid) for rid in request_ids) if uuid is not None]
        if not request_uuids:
            return 0

        result = db.session.execute(
            update(AccessRequest)
            .where(AccessRequest.id.in_(request_uuids), AccessRequest.status == STATUS_PENDING)
            .values(
                status=STATUS_APPROVED,
                reviewed_at=utcnow(),
                reviewed_by=self._reviewer_uuid(reviewer_id),
            )
            .execution_options(synchronize_session=False)
        )
        approved = result.rowcount

        audit_bulk_operation(
            table_name=AccessRequest.__tablename__,
            action='BULK_APPROVE',
            record_count=approved,
            summary={'requested': len(request_ids)},
            user_email=reviewer_email,
        )
        db.session.commit()
        # Rows changed behind the identity map
        db.session.expire_all()

        MetricsService.track_access_request_reviewed(STATUS_APPROVED, approved)
        return approved

    @staticmethod
    def _reviewer_uuid(reviewer_id):
        reviewer_uuid = parse_uuid(reviewer_id)
        if reviewer_uuid is None:
            raise ValidationError('Invalid reviewer identity')
        return reviewer_uuid
