"""
Domain exceptions for the access-gated onboarding workflow.

Every exception carries the HTTP status, a stable machine-readable
``error_code`` and a user-facing message, so the application error handler
can turn it into the standard error response without leaking storage detail.
"""


class AccessGateError(Exception):
    """Base exception for all onboarding workflow errors."""

    status_code = 500
    error_code = 'internal_error'
    default_message = 'Internal server error'

    def __init__(self, message=None, details=None, retry_after=None):
        self.message = message or self.default_message
        self.details = details
        self.retry_after = retry_after
        super().__init__(self.message)

    def extra(self):
        """Additional fields merged into the error response body."""
        if self.retry_after is not None:
            return {'retry_after': self.retry_after}
        return {}


# Validation errors

class ValidationError(AccessGateError):
    """Raised when request input is malformed or incomplete."""

    status_code = 400
    error_code = 'validation_error'
    default_message = 'Invalid request'

    def __init__(self, message=None, fields=None, details=None):
        super().__init__(message, details=details)
        self.fields = fields or {}

    def extra(self):
        return {'fields': self.fields} if self.fields else {}


class InvalidCode(ValidationError):
    """Raised when an access code is not 12 characters of the code alphabet."""

    error_code = 'invalid_code'
    default_message = 'Access code must be 12 characters'


# Not found

class AccessRequestNotFound(AccessGateError):
    status_code = 404
    error_code = 'not_found'
    default_message = 'Access request not found'


class AccessCodeNotFound(AccessGateError):
    status_code = 404
    error_code = 'not_found'
    default_message = 'Invalid access code'


# State conflicts

class DuplicatePendingRequest(AccessGateError):
    status_code = 409
    error_code = 'duplicate_pending_request'
    default_message = 'You already have a pending access request'


class AccountAlreadyExists(AccessGateError):
    status_code = 409
    error_code = 'account_already_exists'
    default_message = 'Account already exists'


class AlreadyReviewed(AccessGateError):
    status_code = 400
    error_code = 'already_reviewed'
    default_message = 'Access request already reviewed'

    def __init__(self, status=None, **kwargs):
        self.status = status
        message = f'Access request already {status}' if status else None
        super().__init__(message, **kwargs)


class RequestNotApproved(AccessGateError):
    status_code = 400
    error_code = 'request_not_approved'
    default_message = 'Access request is not approved'


class CodeAlreadyIssued(AccessGateError):
    status_code = 409
    error_code = 'code_already_issued'
    default_message = 'Access code already generated'


class CodeAlreadyUsed(AccessGateError):
    status_code = 409
    error_code = 'already_used'
    default_message = 'Access code has already been used'


class CodeExpired(AccessGateError):
    status_code = 400
    error_code = 'expired'
    default_message = 'Access code has expired'


# Resource exhaustion

class CodeGenerationExhausted(AccessGateError):
    status_code = 503
    error_code = 'code_generation_exhausted'
    default_message = 'Failed to generate unique code'

    def __init__(self, attempts=None, **kwargs):
        self.attempts = attempts
        kwargs.setdefault('retry_after', 1)
        super().__init__(**kwargs)


class RateLimited(AccessGateError):
    status_code = 429
    error_code = 'rate_limited'
    default_message = 'Too many requests'

    def __init__(self, retry_after, message=None):
        message = message or f'Rate limit exceeded. Please try again in {retry_after} seconds.'
        super().__init__(message, retry_after=retry_after)


# Collaborator failures

class CaptchaFailed(AccessGateError):
    status_code = 400
    error_code = 'captcha_failed'
    default_message = 'CAPTCHA verification failed'


class EmailDeliveryError(AccessGateError):
    status_code = 502
    error_code = 'email_delivery_failed'
    default_message = 'Email sending failed'


# Authorization

class Forbidden(AccessGateError):
    status_code = 403
    error_code = 'forbidden'
    default_message = 'Admin role required'


# Multi-step failures

class PartialRedemptionFailure(AccessGateError):
    """Account creation failed after the access code was claimed.

    ``code_released`` tells whether the claim was rolled back, i.e. the code
    can still be redeemed.
    """

    status_code = 500
    error_code = 'partial_redemption_failure'
    default_message = 'Account creation failed'

    def __init__(self, code_released, message=None):
        self.code_released = code_released
        if message is None:
            message = 'Account creation failed; your access code is still valid' if code_released \
                else 'Account creation failed after your access code was used; contact support'
        super().__init__(message)

    def extra(self):
        return {'code_released': self.code_released}
