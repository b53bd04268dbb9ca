"""
Admin invitation workflow

Reviews access requests and turns approved ones into emailed access codes.
Every operation takes the acting ``Principal`` explicitly and requires the
admin role. Batch sends treat each request independently: one failure is
reported in ``errors`` and never aborts the rest.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app

from access_gate import db
from access_gate.exceptions import (
    AccessCodeNotFound,
    AccessGateError,
    CodeAlreadyUsed,
    CodeExpired,
    EmailDeliveryError,
    Forbidden,
    RequestNotApproved,
)
from access_gate.models.access_code import GENERATION_ADMIN_INVITE, GENERATION_USER_REQUEST, REASON_EXPIRED
from access_gate.models.access_request import STATUS_APPROVED
from access_gate.services.access_codes import AccessCodeStore
from access_gate.services.access_requests import AccessRequestStore
from access_gate.services.email_service import EmailService, build_invitation_url
from access_gate.utils.response import log_error, log_info


@dataclass
class BatchResult:
    results: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self):
        return {
            'total': len(self.results) + len(self.errors),
            'successful': len(self.results),
            'failed': len(self.errors),
        }

    def to_dict(self):
        return {'results': self.results, 'errors': self.errors, 'summary': self.summary}


@dataclass
class DirectInvitation:
    access_code: Any
    invitation_url: str
    email: Optional[str] = None
    email_sent: bool = False
    email_error: Optional[str] = None

    def to_dict(self):
        code = self.access_code.to_dict()
        return {
            'access_code': code['code'],
            'expires_at': code['expires_at'],
            'invitation_url': self.invitation_url,
            'email': self.email,
            'email_sent': self.email_sent,
            'email_error': self.email_error,
        }


class InvitationOrchestrator:
    """Admin operations over access requests and access codes"""

    def __init__(self, request_store=None, code_store=None, email_service=None):
        self.request_store = request_store or AccessRequestStore()
        self.code_store = code_store or AccessCodeStore()
        self._email_service = email_service

    @property
    def email_service(self):
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    @staticmethod
    def _require_admin(principal):
        if principal is None or not principal.is_admin:
            raise Forbidden()

    def approve_request(self, request_id, principal):
        self._require_admin(principal)
        return self.request_store.approve(request_id, principal.id, reviewer_email=principal.email)

    def reject_request(self, request_id, principal, reason=None):
        self._require_admin(principal)
        return self.request_store.reject(request_id, principal.id, reason=reason, reviewer_email=principal.email)

    def batch_approve(self, request_ids, principal):
        self._require_admin(principal)
        approved = self.request_store.batch_approve(request_ids, principal.id, reviewer_email=principal.email)
        log_info(f"Batch approved {approved} access request(s)", {'requested': len(request_ids)})
        return approved

    def batch_send_invitations(self, request_ids, principal) -> BatchResult:
        """
        Issue a code for each approved request and email it

        A code whose email fails stays issued; the failure is reported with
        ``code_issued: True`` so it can be resent with resend_invitation.
        """
        self._require_admin(principal)
        batch = BatchResult()

        for request_id in request_ids:
            try:
                access_request, access_code = self._issue_for_request(request_id, principal)
            except AccessGateError as e:
                db.session.rollback()
                batch.errors.append(self._error_entry(request_id, e))
                continue
            except Exception as e:
                db.session.rollback()
                log_error('Failed to process invitation', e, {'request_id': str(request_id)})
                batch.errors.append({
                    'request_id': str(request_id),
                    'error': 'Processing failed',
                    'error_code': 'internal_error',
                    'code_issued': False,
                })
                continue

            try:
                self.email_service.send_invitation(access_request.email, access_request.name, access_code.code)
            except EmailDeliveryError as e:
                current_app.logger.warning(
                    f"Code {access_code.id} issued for request {access_request.id} but email failed"
                )
                batch.errors.append(
                    self._error_entry(request_id, e, email=access_request.email, code_issued=True)
                )
                continue
            except Exception as e:
                log_error('Invitation email failed after issuing code', e,
                          {'request_id': str(access_request.id), 'access_code_id': str(access_code.id)})
                batch.errors.append(
                    self._error_entry(request_id, EmailDeliveryError(), email=access_request.email, code_issued=True)
                )
                continue

            batch.results.append({
                'request_id': str(access_request.id),
                'email': access_request.email,
                'name': access_request.name,
                'code': access_code.code,
                'expires_at': access_code.to_dict()['expires_at'],
                'success': True,
            })

        log_info('Batch invitation send complete', batch.summary)
        return batch

    def _issue_for_request(self, request_id, principal):
        access_request = self.request_store.get(request_id)
        if access_request.status != STATUS_APPROVED:
            raise RequestNotApproved(f'Access request is {access_request.status}, not approved')

        access_code = self.code_store.issue(
            generated_by=principal.id,
            generation_type=GENERATION_USER_REQUEST,
            access_request_id=access_request.id,
            issued_by_email=principal.email,
        )
        return access_request, access_code

    @staticmethod
    def _error_entry(request_id, error, email=None, code_issued=False):
        entry = {
            'request_id': str(request_id),
            'error': error.message,
            'error_code': error.error_code,
            'code_issued': code_issued,
        }
        if email:
            entry['email'] = email
        return entry

    def resend_invitation(self, request_id, principal):
        """Re-email the still-valid code issued for an approved request"""
        self._require_admin(principal)
        access_request = self.request_store.get(request_id)
        if access_request.status != STATUS_APPROVED:
            raise RequestNotApproved(f'Access request is {access_request.status}, not approved')

        access_code = self.code_store.find_by_request(access_request.id)
        if access_code is None:
            raise AccessCodeNotFound('No access code has been issued for this request')

        reason = access_code.invalid_reason()
        if reason == REASON_EXPIRED:
            raise CodeExpired()
        if reason is not None:
            raise CodeAlreadyUsed()

        self.email_service.send_invitation(access_request.email, access_request.name, access_code.code)
        log_info(f"Resent invitation for request {access_request.id}")
        return access_code

    def invite_directly(self, principal, email=None, name=None, ttl=None):
        """Issue an admin_invite code, emailing it when an address is given"""
        self._require_admin(principal)
        ttl = ttl if ttl is not None else self.code_store.default_ttl
        access_code = self.code_store.issue(
            generated_by=principal.id,
            generation_type=GENERATION_ADMIN_INVITE,
            ttl=ttl,
            issued_by_email=principal.email,
        )
        invitation = DirectInvitation(
            access_code=access_code,
            invitation_url=build_invitation_url(access_code.code),
            email=email,
        )

        if email:
            try:
                self.email_service.send_invitation(
                    email,
                    name or email.split('@')[0],
                    access_code.code,
                    expiry_hours=max(1, int(ttl.total_seconds() // 3600)),
                )
                invitation.email_sent = True
            except EmailDeliveryError as e:
                invitation.email_error = e.message

        return invitation
