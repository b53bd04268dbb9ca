"""
Authentication Routes - access requests, code validation, signup and sessions
"""
import secrets
from datetime import datetime, timedelta, timezone

from flask import Blueprint, jsonify, request, current_app, g
from sqlalchemy import delete

from access_gate import db
from access_gate.exceptions import (
    AccessGateError,
    AccessRequestNotFound,
    AccountAlreadyExists,
    EmailDeliveryError,
    InvalidCode,
    ValidationError,
)
from access_gate.models import User, Verification
from access_gate.models.base import utcnow
from access_gate.services.access_codes import AccessCodeStore
from access_gate.services.access_requests import AccessRequestStore
from access_gate.services.accounts import (
    MIN_PASSWORD_LENGTH,
    authenticate_password,
    create_credential_user,
    record_login,
)
from access_gate.services.captcha import require_captcha
from access_gate.services.code_generator import is_well_formed_code, normalize_code
from access_gate.services.email_service import EmailService
from access_gate.services.rate_limiter import (
    ACCESS_REQUEST_POLICY,
    CODE_VALIDATION_POLICY,
    MAGIC_LINK_POLICY,
    enforce_rate_limit,
)
from access_gate.services.redemption import RedemptionCoordinator
from access_gate.utils.auth import require_auth
from access_gate.utils.audit import create_audit_log
from access_gate.utils.jwt_utils import create_jwt_token
from access_gate.utils.redis_session import get_session_store
from access_gate.utils.response import is_valid_email, normalize_email, success_response
from access_gate.utils.routes_helpers import get_client_ip, get_json_body, handle_db_error

auth_bp = Blueprint('auth', __name__)

MAGIC_LINK_SENT_MESSAGE = 'If an account exists for this email, a sign-in link has been sent.'


def _validate_email_field(data, fields):
    email = (data.get('email') or '').strip()
    if not email:
        fields['email'] = 'Email is required'
    elif not is_valid_email(email):
        fields['email'] = 'Invalid email format'
    return email


def _session_response(user, message, status_code=200):
    """Create a session for user and return it as JSON plus cookie"""
    session = get_session_store().create_session(
        user,
        ip_address=get_client_ip(),
        user_agent=request.headers.get('User-Agent', '')[:500]
    )
    response = jsonify(success_response(
        message=message,
        user=user.to_dict(),
        session={'token': session['token'], 'expires_at': session['expiresAt']}
    ))
    response.status_code = status_code
    response.set_cookie(
        current_app.config.get('SESSION_COOKIE_NAME', 'better-auth.session_token'),
        session['token'],
        max_age=current_app.config.get('SESSION_EXPIRES_DAYS', 7) * 86400,
        httponly=True,
        secure=not (current_app.config.get('DEBUG') or current_app.config.get('TESTING')),
        samesite='Lax'
    )
    return response


@auth_bp.route('/request-access', methods=['POST'])
def request_access():
    """Submit an access request (CAPTCHA-gated, rate limited per email)"""
    try:
        data = get_json_body()
        fields = {}

        email = _validate_email_field(data, fields)

        name = data.get('name')
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            fields['name'] = 'Name is required'
        elif not 2 <= len(name) <= 255:
            fields['name'] = 'Name must be between 2 and 255 characters'

        message = data.get('message')
        if message is not None and not isinstance(message, str):
            fields['message'] = 'Message must be a string'

        captcha_token = data.get('captcha_token') or data.get('captchaToken')
        if not captcha_token:
            fields['captcha_token'] = 'CAPTCHA token is required'

        if fields:
            raise ValidationError('Invalid access request', fields=fields)

        require_captcha(captcha_token, get_client_ip())
        enforce_rate_limit(ACCESS_REQUEST_POLICY, normalize_email(email))

        access_request = AccessRequestStore().submit(email, name, message)

        return jsonify(success_response(
            message='Access request submitted successfully. You will receive an email once it is reviewed.',
            request_id=str(access_request.id)
        )), 201

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to submit access request')


@auth_bp.route('/request-access', methods=['GET'])
def get_access_request_status():
    """Latest access request status for an email"""
    email = (request.args.get('email') or '').strip()
    if not is_valid_email(email):
        raise ValidationError('Invalid email', fields={'email': 'A valid email is required'})

    access_request = AccessRequestStore().latest_for_email(email)
    if access_request is None:
        raise AccessRequestNotFound('No access request found for this email')

    return jsonify(success_response(data=access_request.status_dict()))


@auth_bp.route('/validate-access-code', methods=['POST'])
def validate_access_code():
    """Check whether an access code can be redeemed (read-only)"""
    data = get_json_body()
    code = normalize_code(data.get('access_code') or data.get('accessCode'))

    enforce_rate_limit(CODE_VALIDATION_POLICY, get_client_ip())

    if not is_well_formed_code(code):
        raise InvalidCode(fields={'access_code': 'Access code must be 12 characters'})

    validation = AccessCodeStore().validate(code)
    return jsonify(validation.to_dict())


@auth_bp.route('/sign-up', methods=['POST'])
def sign_up():
    """Create an account by redeeming an access code"""
    try:
        data = get_json_body()
        fields = {}

        email = _validate_email_field(data, fields)

        password = data.get('password')
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            fields['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters'

        name = data.get('name')
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            fields['name'] = 'Name is required'

        code = normalize_code(data.get('access_code') or data.get('accessCode'))
        if not is_well_formed_code(code):
            fields['access_code'] = 'Access code must be 12 characters'

        if fields:
            raise ValidationError('Invalid signup request', fields=fields)

        enforce_rate_limit(CODE_VALIDATION_POLICY, get_client_ip())

        if User.find_by_email(email):
            raise AccountAlreadyExists('An account with this email already exists. Please sign in instead.')

        user = RedemptionCoordinator().redeem(
            code,
            email,
            create_account=lambda access_code: create_credential_user(email, name, password, access_code.code)
        )

        current_app.logger.info(f"User {user.email} signed up with an access code")
        return _session_response(user, 'Account created successfully', 201)

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to create account')


@auth_bp.route('/sign-in', methods=['POST'])
def sign_in():
    """Password sign-in"""
    try:
        data = get_json_body()
        email = (data.get('email') or '').strip()
        password = data.get('password') or ''

        if not email or not password:
            raise ValidationError('Email and password are required')

        user = authenticate_password(email, password)
        if user is None:
            return jsonify({'error': 'Invalid email or password'}), 401

        record_login(user)
        return _session_response(user, 'Signed in successfully')

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to sign in')


@auth_bp.route('/magic-link', methods=['POST'])
def send_magic_link():
    """Email a single-use sign-in link (never reveals whether the account exists)"""
    try:
        data = get_json_body()
        fields = {}
        email = _validate_email_field(data, fields)
        if fields:
            raise ValidationError('Invalid email', fields=fields)

        email = normalize_email(email)
        enforce_rate_limit(MAGIC_LINK_POLICY, email)

        user = User.find_by_email(email)
        if user is None or not user.is_active:
            current_app.logger.info(f"Magic link requested for unknown or inactive account {email}")
            return jsonify(success_response(message=MAGIC_LINK_SENT_MESSAGE))

        expiry_minutes = current_app.config.get('MAGIC_LINK_EXP_MINUTES', 15)
        token = secrets.token_urlsafe(32)
        verification = Verification(
            identifier=email,
            value=token,
            expires_at=utcnow() + timedelta(minutes=expiry_minutes)
        )
        db.session.add(verification)
        db.session.commit()

        frontend_url = current_app.config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
        magic_link_url = f"{frontend_url}/auth/magic-link/verify?token={token}"

        try:
            EmailService().send_magic_link(email, user.name or email.split('@')[0], magic_link_url, expiry_minutes)
        except EmailDeliveryError as e:
            current_app.logger.error(f"Magic link email to {email} failed: {e.message}")

        return jsonify(success_response(message=MAGIC_LINK_SENT_MESSAGE))

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to send sign-in link')


@auth_bp.route('/magic-link/verify', methods=['POST'])
def verify_magic_link():
    """Consume a magic-link token and start a session"""
    try:
        data = get_json_body()
        token = data.get('token')
        if not isinstance(token, str) or not token:
            raise ValidationError('Token is required', fields={'token': 'Token is required'})

        verification = Verification.query.filter_by(value=token).first()
        if verification is None or not verification.is_valid():
            return jsonify({'error': 'Invalid or expired sign-in link'}), 401

        identifier = verification.identifier
        verification_id = verification.id
        db.session.expunge(verification)
        # Single use: only the request that deletes the row may proceed
        result = db.session.execute(
            delete(Verification)
            .where(Verification.id == verification_id, Verification.expires_at > utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        if result.rowcount != 1:
            return jsonify({'error': 'Invalid or expired sign-in link'}), 401

        user = User.find_by_email(identifier)
        if user is None or not user.is_active:
            return jsonify({'error': 'Invalid or expired sign-in link'}), 401

        user.email_verified = True
        record_login(user)
        return _session_response(user, 'Signed in successfully')

    except AccessGateError:
        raise
    except Exception as e:
        return handle_db_error(e, 'Failed to verify sign-in link')


@auth_bp.route('/sign-out', methods=['POST'])
@require_auth
def sign_out():
    """Delete the current session"""
    if g.session_id:
        get_session_store().delete_session(g.session_id)

    response = jsonify(success_response(message='Signed out'))
    response.delete_cookie(current_app.config.get('SESSION_COOKIE_NAME', 'better-auth.session_token'))
    return response


@auth_bp.route('/track-login', methods=['POST'])
@require_auth
def track_login():
    """
    Track user login event - updates last_login timestamp
    and creates audit log entry
    """
    try:
        user_id = g.current_user_id
        user_email = g.current_user_email

        # Get user
        user = User.find_by_id(user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 404

        # Store old last_login for audit trail
        old_last_login = user.last_login

        # Update last_login timestamp
        user.last_login = datetime.now(timezone.utc)

        # Create audit log entry
        create_audit_log(
            table_name='users',
            record_id=user.id,
            action='LOGIN',
            old_values={'last_login': old_last_login.isoformat() if old_last_login else None},
            new_values={'last_login': user.last_login.isoformat()},
            user_email=user_email,
            reason='User login event'
        )

        db.session.commit()

        current_app.logger.info(f"Login tracked for user {user_email}")

        return jsonify({
            'success': True,
            'last_login': user.last_login.isoformat()
        }), 200

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error tracking login: {str(e)}")
        return jsonify({'error': 'Failed to track login'}), 500


@auth_bp.route('/jwt-token', methods=['POST'])
@require_auth
def get_jwt_token():
    """
    Issue a short-lived JWT for the authenticated session.
    """
    try:
        user_id = g.current_user_id
        user_role = g.current_user_role
        token, expires_at = create_jwt_token(user_id, user_role, g.current_user_email)
        current_app.logger.info(f"Issued JWT for user {user_id}, expires at {expires_at}")
        return jsonify({"token": token, "expires_at": expires_at}), 200
    except Exception as e:
        current_app.logger.error(f"Failed to issue JWT: {str(e)}")
        return jsonify({'error': 'Failed to issue JWT'}), 500
