"""
Utility modules for reusable functionality
"""
from .auth import (
    Principal,
    require_auth,
    admin_required,
    get_current_principal
)
from .response import (
    success_response,
    error_response,
    iso_timestamp,
    validate_uuid,
    parse_uuid,
    normalize_email,
    is_valid_email,
    log_error,
    log_info
)

__all__ = [
    # Auth utilities
    'Principal',
    'require_auth',
    'admin_required',
    'get_current_principal',

    # Response utilities
    'success_response',
    'error_response',
    'iso_timestamp',
    'validate_uuid',
    'parse_uuid',
    'normalize_email',
    'is_valid_email',
    'log_error',
    'log_info',
]
