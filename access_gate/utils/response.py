"""
Response formatting utilities
Standardizes API response patterns across routes
"""
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from flask import current_app

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def iso_timestamp() -> str:
    """Get current UTC timestamp in ISO format"""
    return datetime.now(timezone.utc).isoformat()


def success_response(data: Any = None, message: str = None, **kwargs) -> Dict[str, Any]:
    """Standard success response format"""
    response = {
        'success': True,
        'timestamp': iso_timestamp()
    }

    if data is not None:
        response['data'] = data
    if message:
        response['message'] = message

    # Add any additional fields
    response.update(kwargs)

    return response


def error_response(error: str, details: str = None, status_code: int = None, **kwargs) -> Dict[str, Any]:
    """Standard error response format"""
    response = {
        'success': False,
        'error': error,
        'timestamp': iso_timestamp()
    }

    if details:
        response['details'] = details
    if status_code:
        response['status_code'] = status_code

    # Add any additional fields
    response.update(kwargs)

    return response


def log_error(message: str, error: Exception = None, extra_data: Dict[str, Any] = None) -> None:
    """Standardized error logging"""
    log_msg = f"{message}"
    if error:
        log_msg += f": {str(error)}"
    if extra_data:
        log_msg += f" | Data: {extra_data}"

    current_app.logger.error(log_msg)


def log_info(message: str, extra_data: Dict[str, Any] = None) -> None:
    """Standardized info logging"""
    log_msg = message
    if extra_data:
        log_msg += f" | Data: {extra_data}"

    current_app.logger.info(log_msg)


def validate_uuid(uuid_string: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(str(uuid_string))
        return True
    except (ValueError, TypeError):
        return False


def normalize_email(email: str) -> str:
    """Case-normalize an email address"""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    """Basic email format check"""
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def parse_uuid(value) -> Optional[uuid.UUID]:
    """Coerce a UUID or its string form; None if malformed"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None
