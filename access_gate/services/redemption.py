"""
Access code redemption

A code is claimed with a single conditional UPDATE (unused and not expired)
whose affected row count decides the winner, so concurrent redemptions of one
code produce exactly one success. Account creation runs in the same database
transaction as the claim: either both commit or neither does.
"""
from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from access_gate import db
from access_gate.exceptions import (
    AccessCodeNotFound,
    AccountAlreadyExists,
    CodeAlreadyUsed,
    CodeExpired,
    InvalidCode,
    PartialRedemptionFailure,
)
from access_gate.models import AccessCode, User
from access_gate.models.access_code import REASON_ALREADY_USED, REASON_EXPIRED
from access_gate.models.base import utcnow
from access_gate.services.code_generator import is_well_formed_code, normalize_code
from access_gate.services.metrics_service import MetricsService
from access_gate.utils.audit import create_audit_log
from access_gate.utils.response import log_error, normalize_email


class RedemptionCoordinator:
    """Atomically claims an access code and creates the account it unlocks"""

    def redeem(self, code, email, create_account=None):
        """
        Redeem a code for email

        Args:
            code: Access code as typed by the user (case-insensitive)
            email: Email of the account being created
            create_account: Callable receiving the claimed AccessCode. It runs
                inside the claim's transaction and must only add/flush; it
                must not commit.

        Returns:
            Whatever create_account returns (None without a callback)

        Raises:
            InvalidCode, AccessCodeNotFound, CodeAlreadyUsed, CodeExpired,
            AccountAlreadyExists, PartialRedemptionFailure
        """
        code = normalize_code(code)
        if not is_well_formed_code(code):
            raise InvalidCode()

        email = normalize_email(email)
        now = utcnow()

        result = db.session.execute(
            update(AccessCode)
            .where(
                AccessCode.code == code,
                AccessCode.is_used.is_(False),
                AccessCode.expires_at > now,
            )
            .values(is_used=True, used_by_email=email, used_at=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            db.session.rollback()
            self._raise_unredeemable(code, now)

        access_code = db.session.execute(
            select(AccessCode)
            .where(AccessCode.code == code)
            .execution_options(populate_existing=True)
        ).scalar_one()

        create_audit_log(
            table_name=AccessCode.__tablename__,
            record_id=access_code.id,
            action='REDEEM',
            old_values={'is_used': False, 'used_by_email': None},
            new_values={'is_used': True, 'used_by_email': email},
            user_email=email,
            reason='Access code redeemed at signup',
        )

        try:
            account = create_account(access_code) if create_account is not None else None
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if User.find_by_email(email) is not None:
                # Another signup for this email committed first
                MetricsService.track_redemption('account_exists')
                current_app.logger.warning(f"Signup for {email} lost to a concurrent signup; code released")
                raise AccountAlreadyExists('An account with this email already exists. Please sign in instead.') from e
            raise self._partial_failure(code, email, e) from e
        except Exception as e:
            db.session.rollback()
            raise self._partial_failure(code, email, e) from e

        MetricsService.track_redemption('success')
        current_app.logger.info(f"Access code {access_code.id} redeemed by {email}")
        return account

    def _partial_failure(self, code, email, error):
        code_released = self._is_released(code)
        log_error('Account creation failed during access code redemption', error,
                  {'email': email, 'code_released': code_released})
        MetricsService.track_redemption('partial_failure')
        return PartialRedemptionFailure(code_released=code_released)

    def _raise_unredeemable(self, code, now):
        access_code = AccessCode.query.filter_by(code=code).first()
        if access_code is None:
            MetricsService.track_redemption('not_found')
            raise AccessCodeNotFound()

        # A row that looks redeemable here lost a concurrent claim
        reason = access_code.invalid_reason(now) or REASON_ALREADY_USED
        MetricsService.track_redemption(reason)
        if reason == REASON_EXPIRED:
            raise CodeExpired()
        raise CodeAlreadyUsed()

    @staticmethod
    def _is_released(code):
        """True if the code is unused again after rolling back"""
        try:
            is_used = db.session.execute(
                select(AccessCode.is_used).where(AccessCode.code == code)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            db.session.rollback()
            log_error('Could not confirm access code state after failed redemption', e)
            return False
        return is_used is False
