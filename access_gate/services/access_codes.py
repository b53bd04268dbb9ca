"""
Access code store

Issues access codes, answers read-only validation queries and looks codes up
by the request they were issued for. Redemption (the only transition of a
code from unused to used) lives in ``redemption.py``.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from access_gate import db
from access_gate.exceptions import CodeAlreadyIssued, CodeGenerationExhausted, ValidationError
from access_gate.models import AccessCode
from access_gate.models.access_code import GENERATION_TYPES, REASON_NOT_FOUND
from access_gate.models.base import utcnow
from access_gate.services.code_generator import UniqueCodeResolver, is_well_formed_code, normalize_code
from access_gate.services.metrics_service import MetricsService
from access_gate.utils.response import log_error, parse_uuid


@dataclass
class CodeValidation:
    """Outcome of a read-only code lookup"""
    valid: bool
    reason: Optional[str] = None
    access_code: Optional[AccessCode] = None

    def to_dict(self):
        result = {'valid': self.valid}
        if self.reason:
            result['reason'] = self.reason
        if self.valid and self.access_code is not None:
            result['expires_at'] = self.access_code.to_dict()['expires_at']
        return result


class AccessCodeStore:
    """Persistence and lookup of access codes"""

    def __init__(self, max_attempts=None, default_ttl=None):
        self._max_attempts = max_attempts
        self._default_ttl = default_ttl

    @property
    def max_attempts(self):
        if self._max_attempts is not None:
            return self._max_attempts
        return current_app.config.get('ACCESS_CODE_MAX_ATTEMPTS', 10)

    @property
    def default_ttl(self):
        if self._default_ttl is not None:
            return self._default_ttl
        return timedelta(hours=current_app.config.get('ACCESS_CODE_TTL_HOURS', 24))

    def code_exists(self, code):
        """True if the code string was ever stored (used and expired codes included)"""
        return db.session.query(AccessCode.id).filter_by(code=code).first() is not None

    def find_by_request(self, access_request_id):
        request_uuid = parse_uuid(access_request_id)
        if request_uuid is None:
            return None
        return AccessCode.query.filter_by(access_request_id=request_uuid).first()

    def issue(self, generated_by, generation_type, access_request_id=None, ttl=None, issued_by_email=None):
        """
        Generate, persist and return a new unused access code

        Args:
            generated_by: ID of the admin issuing the code
            generation_type: 'admin_invite' or 'user_request'
            access_request_id: Request the code answers (at most one code per request)
            ttl: Lifetime as a timedelta (defaults to ACCESS_CODE_TTL_HOURS)
            issued_by_email: Recorded in the audit log

        Raises:
            CodeAlreadyIssued: the request already has a code
            CodeGenerationExhausted: no unique code within the attempt bound
        """
        if generation_type not in GENERATION_TYPES:
            raise ValidationError(f'Unknown generation type: {generation_type}')

        ttl = ttl if ttl is not None else self.default_ttl
        if ttl <= timedelta(0):
            raise ValidationError('Access code lifetime must be positive')

        request_uuid = None
        if access_request_id is not None:
            request_uuid = parse_uuid(access_request_id)
            if request_uuid is None:
                raise ValidationError('Invalid access request id')
            if self.find_by_request(request_uuid) is not None:
                raise CodeAlreadyIssued()

        max_attempts = self.max_attempts
        resolver = UniqueCodeResolver(self.code_exists, max_attempts=max_attempts)

        for attempt in range(1, max_attempts + 1):
            code = resolver.resolve()
            access_code = AccessCode(
                code=code,
                is_used=False,
                expires_at=utcnow() + ttl,
                generated_by=parse_uuid(generated_by),
                generation_type=generation_type,
                access_request_id=request_uuid,
            )

            try:
                access_code.save(user_email=issued_by_email, reason=f'Access code issued ({generation_type})')
            except IntegrityError as e:
                db.session.rollback()
                if request_uuid is not None and self.find_by_request(request_uuid) is not None:
                    # Lost a race against a concurrent issue for the same request
                    raise CodeAlreadyIssued() from e
                if not self.code_exists(code):
                    log_error('Access code insert rejected by storage', e,
                              {'generated_by': str(generated_by), 'access_request_id': str(request_uuid)})
                    raise ValidationError('Invalid issuer or request reference') from e
                current_app.logger.warning(
                    f"Access code insert collided on attempt {attempt}/{max_attempts}, retrying"
                )
                continue

            MetricsService.track_access_code_issued(generation_type)
            current_app.logger.info(
                f"Issued {generation_type} access code {access_code.id}"
                + (f" for request {request_uuid}" if request_uuid else "")
            )
            return access_code

        raise CodeGenerationExhausted(attempts=max_attempts)

    def validate(self, code):
        """Read-only check of whether a code could be redeemed right now"""
        code = normalize_code(code)
        access_code = None
        if is_well_formed_code(code):
            access_code = AccessCode.query.filter_by(code=code).first()

        if access_code is None:
            return CodeValidation(valid=False, reason=REASON_NOT_FOUND)

        reason = access_code.invalid_reason(utcnow())
        return CodeValidation(valid=reason is None, reason=reason, access_code=access_code)
