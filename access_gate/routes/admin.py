"""
Admin routes for reviewing access requests and issuing invitations
"""
from datetime import timedelta

from flask import Blueprint, jsonify, current_app

from access_gate.exceptions import AccessGateError, ValidationError
from access_gate.services.invitations import InvitationOrchestrator
from access_gate.services.rate_limiter import CODE_GENERATION_POLICY, enforce_rate_limit
from access_gate.utils.auth import require_auth, admin_required, get_current_principal
from access_gate.utils.response import is_valid_email, normalize_email, success_response, validate_uuid
from access_gate.utils.routes_helpers import get_json_body, handle_db_error

admin_bp = Blueprint('admin', __name__)

MAX_BATCH_SIZE = 100


def get_orchestrator():
    """Orchestrator wired with the default stores and email service"""
    return InvitationOrchestrator()


def _request_ids_from_body(data):
    """Validated, de-duplicated request ids from a batch request body"""
    request_ids = data.get('request_ids', data.get('requestIds'))
    if not isinstance(request_ids, list) or not request_ids:
        raise ValidationError('request_ids array is required',
                              fields={'request_ids': 'A non-empty list of request ids is required'})
    if len(request_ids) > MAX_BATCH_SIZE:
        raise ValidationError(f'At most {MAX_BATCH_SIZE} requests per batch',
                              fields={'request_ids': f'At most {MAX_BATCH_SIZE} ids allowed'})

    invalid = [str(rid) for rid in request_ids if not validate_uuid(rid)]
    if invalid:
        raise ValidationError('Invalid request id(s)',
                              fields={'request_ids': f"Invalid id(s): {', '.join(invalid)}"})

    # Preserve order, drop repeats
    return list(dict.fromkeys(str(rid) for rid in request_ids))


@admin_bp.route('/access-requests/<request_id>/approve', methods=['POST'])
@require_auth
@admin_required
def approve_access_request(request_id):
    """Approve a pending access request"""
    try:
        access_request = get_orchestrator().approve_request(request_id, get_current_principal())
        return jsonify(success_response(
            message='Access request approved successfully',
            request=access_request.to_dict()
        ))
    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to approve access request')


@admin_bp.route('/access-requests/<request_id>/reject', methods=['POST'])
@require_auth
@admin_required
def reject_access_request(request_id):
    """Reject a pending access request with an optional reason"""
    try:
        data = get_json_body()
        reason = data.get('reason')
        if reason is not None and not isinstance(reason, str):
            raise ValidationError('Reason must be a string', fields={'reason': 'Reason must be a string'})

        access_request = get_orchestrator().reject_request(request_id, get_current_principal(), reason=reason)
        return jsonify(success_response(
            message='Access request rejected',
            request=access_request.to_dict()
        ))
    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to reject access request')


@admin_bp.route('/access-requests/batch-approve', methods=['POST'])
@require_auth
@admin_required
def batch_approve_access_requests():
    """Approve every pending request in request_ids"""
    try:
        request_ids = _request_ids_from_body(get_json_body())
        count = get_orchestrator().batch_approve(request_ids, get_current_principal())
        return jsonify(success_response(
            message=f'{count} access request(s) approved',
            count=count
        ))
    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to approve access requests')


@admin_bp.route('/access-requests/batch-send-invitations', methods=['POST'])
@require_auth
@admin_required
def batch_send_invitations():
    """
    Issue and email access codes for approved requests

    Per-request failures are reported in ``errors``; the call itself succeeds.
    """
    try:
        request_ids = _request_ids_from_body(get_json_body())
        batch = get_orchestrator().batch_send_invitations(request_ids, get_current_principal())
        summary = batch.summary
        return jsonify(success_response(
            message=f"Sent {summary['successful']} of {summary['total']} invitation(s)",
            **batch.to_dict()
        ))
    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to send invitations')


@admin_bp.route('/access-requests/<request_id>/resend-invitation', methods=['POST'])
@require_auth
@admin_required
def resend_invitation(request_id):
    """Re-send the still-valid access code of an approved request"""
    try:
        access_code = get_orchestrator().resend_invitation(request_id, get_current_principal())
        code = access_code.to_dict()
        return jsonify(success_response(
            message='Invitation re-sent',
            access_code=code['code'],
            expires_at=code['expires_at']
        ))
    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to resend invitation')


@admin_bp.route('/access-codes', methods=['POST'])
@require_auth
@admin_required
def generate_access_code():
    """Generate an admin invitation code, optionally emailing it"""
    try:
        data = get_json_body()
        principal = get_current_principal()

        email = data.get('email')
        if email is not None:
            if not isinstance(email, str) or not is_valid_email(email):
                raise ValidationError('Invalid email format', fields={'email': 'Invalid email format'})
            email = normalize_email(email)

        name = data.get('name')
        if name is not None and not isinstance(name, str):
            raise ValidationError('Name must be a string', fields={'name': 'Name must be a string'})

        expiry_hours = data.get('expiry_hours', current_app.config.get('ACCESS_CODE_TTL_HOURS', 24))
        if not isinstance(expiry_hours, int) or isinstance(expiry_hours, bool) or not 1 <= expiry_hours <= 24 * 30:
            raise ValidationError('expiry_hours must be between 1 and 720',
                                  fields={'expiry_hours': 'Must be an integer between 1 and 720'})

        enforce_rate_limit(CODE_GENERATION_POLICY, principal.id)

        invitation = get_orchestrator().invite_directly(
            principal,
            email=email,
            name=name,
            ttl=timedelta(hours=expiry_hours)
        )

        current_app.logger.info(f"Admin {principal.email} generated access code {invitation.access_code.id}")

        return jsonify(success_response(
            message='Access code generated successfully',
            expiry_hours=expiry_hours,
            **invitation.to_dict()
        )), 201

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to generate access code')
