"""
Access code generation

Codes are 12 characters drawn uniformly from a 32-symbol alphabet without
visually ambiguous characters (no 0/O, 1/I/L). 32^12 is about 1.15e18
possible codes, which makes collisions unlikely but not impossible, so
uniqueness is still resolved against storage and enforced by the unique
index on ``access_codes.code``.
"""
import secrets
from typing import Callable

from flask import current_app

from access_gate.exceptions import CodeGenerationExhausted

CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 12
DEFAULT_MAX_ATTEMPTS = 10


def generate_access_code(length: int = CODE_LENGTH) -> str:
    """Generate a cryptographically random access code"""
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(value) -> str:
    """Strip and upper-case user-supplied code input"""
    if value is None:
        return ''
    return str(value).strip().upper()


def is_well_formed_code(value: str) -> bool:
    """True if value has the code length and only alphabet characters"""
    return (
        isinstance(value, str)
        and len(value) == CODE_LENGTH
        and all(char in CODE_ALPHABET for char in value)
    )


class UniqueCodeResolver:
    """Generate candidates until one is not already stored.

    ``exists`` is a callable answering whether a code string is already taken
    (expired and used codes count: a code string is never reused). Generation
    and the check are not atomic with the insert; the caller must still treat
    a unique-constraint violation on insert as a collision.
    """

    def __init__(self, exists: Callable[[str], bool], max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 generator: Callable[[], str] = generate_access_code):
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')
        self.exists = exists
        self.max_attempts = max_attempts
        self.generator = generator

    def resolve(self) -> str:
        """Return a code that is not in storage, or raise CodeGenerationExhausted"""
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generator()
            if not self.exists(candidate):
                return candidate
            current_app.logger.warning(f"Access code collision on attempt {attempt}/{self.max_attempts}")

        current_app.logger.error(f"Could not generate a unique access code after {self.max_attempts} attempts")
        raise CodeGenerationExhausted(attempts=self.max_attempts)
