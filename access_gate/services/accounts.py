"""
Credential account helpers (Better Auth ``credential`` provider)
"""
from werkzeug.security import generate_password_hash

from access_gate import db
from access_gate.models import Account, User
from access_gate.models.account import CREDENTIAL_PROVIDER
from access_gate.models.base import utcnow
from access_gate.utils.audit import create_audit_log
from access_gate.utils.response import normalize_email

MIN_PASSWORD_LENGTH = 8


def create_credential_user(email, name, password, access_code=None):
    """
    Add a user and its password account to the session

    Flushes but does not commit; the caller owns the transaction.
    """
    email = normalize_email(email)
    user = User(
        email=email,
        name=name,
        role='user',
        is_active=True,
        email_verified=False,
        access_code=access_code,
    )
    db.session.add(user)
    db.session.flush()

    account = Account(
        user_id=user.id,
        account_id=email,
        provider_id=CREDENTIAL_PROVIDER,
        password=generate_password_hash(password),
    )
    db.session.add(account)
    db.session.flush()

    create_audit_log(
        table_name=User.__tablename__,
        record_id=user.id,
        action='CREATE',
        new_values=user.to_dict(),
        user_email=email,
        reason='Signup with access code' if access_code else 'Signup',
    )
    return user


def authenticate_password(email, password):
    """Return the active user for an email/password pair, or None"""
    account = Account.find_credential(email)
    if account is None or not account.check_password(password):
        return None
    user = account.user
    if user is None or not user.is_active:
        return None
    return user


def record_login(user):
    user.last_login = utcnow()
    db.session.commit()
