"""
Utility helpers for issuing and validating JWT access tokens.

These tokens let the frontend talk to this API (and other services)
without needing to forward Better Auth session cookies.
"""
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


def create_jwt_token(user_id: str, role: str, email: str = None) -> tuple[str, str]:
    """Return a tuple of (token string, ISO8601 expiry timestamp)."""
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=current_app.config['JWT_EXP_MINUTES'])
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": expires_at,
    }
    if email:
        payload["email"] = email
    token = jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=current_app.config['JWT_ALGORITHM'])

    return token, expires_at.isoformat().replace('+00:00', 'Z')


def verify_jwt_token(token: str) -> dict:
    """Verify a JWT and return its payload; raises jwt exceptions on failure."""
    return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[current_app.config['JWT_ALGORITHM']])


def looks_like_jwt(token: str) -> bool:
    """JWTs have three dot-separated segments; session tokens have none"""
    return token.count('.') == 2
