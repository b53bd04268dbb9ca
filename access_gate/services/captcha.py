"""
Cloudflare Turnstile verification

Verification fails closed: network errors, non-2xx responses and malformed
payloads all count as a failed challenge. Without a secret key the check is
skipped only in debug and testing configurations.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
import requests

from access_gate.exceptions import CaptchaFailed

TURNSTILE_ERROR_MESSAGES = {
    'timeout-or-duplicate': 'CAPTCHA token expired or already used',
    'invalid-input-response': 'Invalid CAPTCHA token',
    'bad-request': 'Invalid CAPTCHA request',
}


@dataclass
class CaptchaResult:
    success: bool
    error: Optional[str] = None
    error_codes: List[str] = field(default_factory=list)
    hostname: Optional[str] = None


def verify_turnstile_token(token, remote_ip=None) -> CaptchaResult:
    """Verify a Turnstile response token with Cloudflare"""
    secret = current_app.config.get('TURNSTILE_SECRET_KEY')
    if not secret:
        if current_app.config.get('DEBUG') or current_app.config.get('TESTING'):
            current_app.logger.warning("TURNSTILE_SECRET_KEY not set, skipping CAPTCHA verification")
            return CaptchaResult(success=True)
        current_app.logger.error("TURNSTILE_SECRET_KEY not set")
        return CaptchaResult(success=False, error='CAPTCHA configuration error')

    if not isinstance(token, str) or not token.strip():
        return CaptchaResult(success=False, error='Invalid token format')

    form = {'secret': secret, 'response': token}
    if remote_ip:
        form['remoteip'] = remote_ip

    try:
        response = requests.post(
            current_app.config['TURNSTILE_VERIFY_URL'],
            data=form,
            timeout=current_app.config.get('CAPTCHA_TIMEOUT_SECONDS', 10)
        )
    except requests.RequestException as e:
        current_app.logger.error(f"Turnstile verification request failed: {e}")
        return CaptchaResult(success=False, error='CAPTCHA verification error')

    if not response.ok:
        current_app.logger.error(f"Turnstile verification returned {response.status_code}")
        return CaptchaResult(success=False, error='CAPTCHA verification service error')

    try:
        payload = response.json()
    except ValueError:
        current_app.logger.error("Turnstile verification returned a non-JSON body")
        return CaptchaResult(success=False, error='CAPTCHA verification service error')

    if not payload.get('success'):
        error_codes = payload.get('error-codes') or []
        current_app.logger.warning(f"Turnstile verification failed: {error_codes}")
        message = next(
            (TURNSTILE_ERROR_MESSAGES[code] for code in error_codes if code in TURNSTILE_ERROR_MESSAGES),
            'CAPTCHA verification failed'
        )
        return CaptchaResult(success=False, error=message, error_codes=error_codes)

    return CaptchaResult(success=True, hostname=payload.get('hostname'))


def require_captcha(token, remote_ip=None):
    """Raise CaptchaFailed unless the token verifies"""
    result = verify_turnstile_token(token, remote_ip)
    if not result.success:
        raise CaptchaFailed(result.error)
    return result
