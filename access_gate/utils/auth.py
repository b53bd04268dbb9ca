"""
Better Auth Session Validation for Flask API

This module validates sessions created by Better Auth (Next.js) or by this
API's own sign-in routes. Sessions are stored in Redis for a stateless,
horizontally scalable architecture. Short-lived JWTs issued by
``/auth/jwt-token`` are accepted as bearer credentials as well.

Route handlers hand the resulting ``Principal`` to the service layer
explicitly; services never read the request context for identity.
"""
from dataclasses import dataclass
from functools import wraps
from typing import Optional
from urllib.parse import unquote

import jwt
from flask import request, jsonify, current_app, g
from access_gate.utils.jwt_utils import looks_like_jwt, verify_jwt_token
from access_gate.utils.redis_session import get_session_store


class AuthError(Exception):
    """Authentication error exception"""
    def __init__(self, message, status_code=401):
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class Principal:
    """An already-authenticated identity and its role"""
    id: str
    email: Optional[str] = None
    role: str = 'user'

    @property
    def is_admin(self):
        return self.role == 'admin'


def get_session_token():
    """
    Extract session token from request
    Supports:
    - Authorization: Bearer <session_id or JWT>
    - Cookie: better-auth.session_token=<session_id>
    - X-Session-Token: <session_id>
    """
    auth_header = request.headers.get('Authorization')
    if auth_header:
        try:
            scheme, token = auth_header.split(' ', 1)
            if scheme.lower() == 'bearer':
                return token.strip()
        except ValueError:
            pass

    session_header = request.headers.get('X-Session-Token')
    if session_header:
        return session_header

    cookie_name = current_app.config.get('SESSION_COOKIE_NAME', 'better-auth.session_token')
    if request.cookies.get(cookie_name):
        return request.cookies[cookie_name]

    # Better Auth may prefix cookie names (e.g. __Secure-)
    for name, value in request.cookies.items():
        if 'session' in name.lower():
            return value

    raise AuthError('No session token provided')


def extract_session_id(session_token):
    """Better Auth tokens are formatted as {session_id}.{signature}"""
    decoded_token = unquote(session_token)
    return decoded_token.split('.')[0]


def validate_jwt(token):
    """Validate a bridge JWT and return user info"""
    try:
        payload = verify_jwt_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthError('Token expired')
    except jwt.InvalidTokenError:
        raise AuthError('Invalid token')

    user_id = payload.get('sub')
    if not user_id:
        raise AuthError('Invalid token')

    return {
        'user_id': str(user_id),
        'email': payload.get('email'),
        'role': payload.get('role') or 'user',
        'session_id': None,
    }


def validate_better_auth_session(session_token):
    """
    Validate Better Auth session token from Redis

    Args:
        session_token: The session token to validate
    """
    session_id = extract_session_id(session_token)

    try:
        session_data = get_session_store().get_session(session_id)
    except Exception as e:
        current_app.logger.error(f"Session validation error: {str(e)}")
        raise AuthError('Session validation failed')

    if not session_data:
        raise AuthError('Invalid session')

    user_payload = session_data.get('user') or {}

    user_id = user_payload.get('id') or session_data.get('userId')
    if not user_id:
        raise AuthError('Invalid session data')

    if not user_payload.get('isActive', True):
        raise AuthError('User account is inactive')

    return {
        'user_id': str(user_id),
        'email': user_payload.get('email') or session_data.get('userEmail'),
        'role': user_payload.get('role') or session_data.get('userRole') or 'user',
        'session_id': session_id,
    }


def authenticate_request():
    """Resolve the request credentials to user info (raises AuthError)"""
    token = get_session_token()
    if looks_like_jwt(token):
        return validate_jwt(token)
    return validate_better_auth_session(token)


def require_auth(f):
    """Decorator to require session or JWT authentication for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_info = authenticate_request()
        except AuthError as e:
            return jsonify({
                'error': 'Authentication failed',
                'message': e.message
            }), e.status_code

        # Store user information in Flask g object
        g.current_user_id = user_info['user_id']
        g.current_user_email = user_info['email']
        g.current_user_role = user_info['role']
        g.session_id = user_info['session_id']
        g.current_principal = Principal(
            id=user_info['user_id'],
            email=user_info['email'],
            role=user_info['role'],
        )

        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    """Decorator to require admin role for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user_role') or g.current_user_role != 'admin':
            return jsonify({
                'error': 'Access denied',
                'message': 'Admin role required'
            }), 403

        return f(*args, **kwargs)

    return decorated_function


def get_current_principal():
    """Get the authenticated principal from Flask g object"""
    return getattr(g, 'current_principal', None)
