"""Atomic redemption of access codes tied to account creation."""

import threading
from datetime import timedelta

import pytest
from sqlalchemy import event, false, update

from access_gate import create_app, db
from access_gate.exceptions import (
    AccessCodeNotFound,
    AccountAlreadyExists,
    CodeAlreadyUsed,
    CodeExpired,
    InvalidCode,
    PartialRedemptionFailure,
)
from access_gate.models import AccessCode, AuditLog, User
from access_gate.models.base import utcnow
from access_gate.services.access_codes import AccessCodeStore
from access_gate.services.accounts import create_credential_user
from access_gate.services.code_generator import UniqueCodeResolver
from access_gate.services.redemption import RedemptionCoordinator


@pytest.fixture
def coordinator(app):
    return RedemptionCoordinator()


@pytest.fixture
def fixed_code(app, admin, monkeypatch):
    """Issue the code ABCDEFGHJKLM"""
    monkeypatch.setattr(
        'access_gate.services.access_codes.UniqueCodeResolver',
        lambda exists, max_attempts=10: UniqueCodeResolver(
            exists, max_attempts=max_attempts, generator=lambda: 'ABCDEFGHJKLM'
        ),
    )
    return AccessCodeStore().issue(admin.id, 'admin_invite')


def _reload(code):
    db.session.expire_all()
    return AccessCode.query.filter_by(code=code).one()


def test_redeem_marks_code_used(coordinator, fixed_code):
    coordinator.redeem('ABCDEFGHJKLM', 'B@Y.com')

    access_code = _reload('ABCDEFGHJKLM')
    assert access_code.is_used is True
    assert access_code.used_by_email == 'b@y.com'
    assert access_code.used_at is not None
    assert AuditLog.query.filter_by(record_id=access_code.id, action='REDEEM').count() == 1


def test_second_redemption_fails_with_already_used(coordinator, fixed_code):
    coordinator.redeem('ABCDEFGHJKLM', 'b@y.com')

    with pytest.raises(CodeAlreadyUsed):
        coordinator.redeem('ABCDEFGHJKLM', 'someone.else@y.com')

    assert _reload('ABCDEFGHJKLM').used_by_email == 'b@y.com'


def test_repeated_attempts_succeed_exactly_once(coordinator, fixed_code):
    outcomes = []
    for index in range(5):
        try:
            coordinator.redeem('abcdefghjklm', f'user{index}@y.com')
            outcomes.append('ok')
        except CodeAlreadyUsed:
            outcomes.append('used')

    assert outcomes.count('ok') == 1
    assert outcomes.count('used') == 4


def test_redeem_is_case_insensitive(coordinator, fixed_code):
    coordinator.redeem('  abcdefghjklm ', 'b@y.com')
    assert _reload('ABCDEFGHJKLM').is_used is True


def test_redeem_rejects_malformed_code(coordinator):
    with pytest.raises(InvalidCode):
        coordinator.redeem('ABC', 'b@y.com')


def test_redeem_unknown_code(coordinator):
    with pytest.raises(AccessCodeNotFound):
        coordinator.redeem('ZZZZZZZZZZZZ', 'b@y.com')


def test_redeem_expired_code(coordinator, fixed_code):
    fixed_code.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    with pytest.raises(CodeExpired):
        coordinator.redeem('ABCDEFGHJKLM', 'b@y.com')

    assert _reload('ABCDEFGHJKLM').is_used is False


def test_account_created_in_same_transaction(coordinator, fixed_code):
    user = coordinator.redeem(
        'ABCDEFGHJKLM',
        'b@y.com',
        create_account=lambda access_code: create_credential_user('b@y.com', 'Bea', 'password123', access_code.code)
    )

    assert user.email == 'b@y.com'
    assert User.find_by_email('b@y.com').access_code == 'ABCDEFGHJKLM'
    assert _reload('ABCDEFGHJKLM').is_used is True


def test_failed_account_creation_releases_code(coordinator, fixed_code):
    def create_account(access_code):
        db.session.add(User(email='b@y.com', name='Bea'))
        db.session.flush()
        raise RuntimeError('account service down')

    with pytest.raises(PartialRedemptionFailure) as excinfo:
        coordinator.redeem('ABCDEFGHJKLM', 'b@y.com', create_account=create_account)

    assert excinfo.value.code_released is True
    assert _reload('ABCDEFGHJKLM').is_used is False
    assert User.find_by_email('b@y.com') is None

    # The code is still redeemable afterwards
    coordinator.redeem('ABCDEFGHJKLM', 'b@y.com')
    assert _reload('ABCDEFGHJKLM').is_used is True


def test_claim_lost_to_a_concurrent_redemption_reports_already_used(coordinator, fixed_code, monkeypatch):
    # The row still looks redeemable, but the conditional update matched nothing
    monkeypatch.setattr(
        'access_gate.services.redemption.update',
        lambda table: update(table).where(false()),
    )

    with pytest.raises(CodeAlreadyUsed):
        coordinator.redeem('ABCDEFGHJKLM', 'b@y.com')

    assert _reload('ABCDEFGHJKLM').is_used is False


def test_signup_that_loses_the_email_race_gets_account_exists(coordinator, fixed_code):
    db.session.add(User(email='b@y.com', name='Winner', role='user', is_active=True))
    db.session.commit()

    with pytest.raises(AccountAlreadyExists):
        coordinator.redeem(
            'ABCDEFGHJKLM',
            'b@y.com',
            create_account=lambda access_code: create_credential_user('b@y.com', 'Bea', 'password123', access_code.code)
        )

    assert _reload('ABCDEFGHJKLM').is_used is False
    assert User.query.filter_by(email='b@y.com').count() == 1


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database that several threads can share"""
    import config as app_config

    class FileTestingConfig(app_config.TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'redemption.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30, 'check_same_thread': False}}

    monkeypatch.setitem(app_config.config, 'file_testing', FileTestingConfig)
    app = create_app('file_testing')

    with app.app_context():
        engine = db.engine

        # Writers queue on the database lock instead of failing a lock upgrade
        @event.listens_for(engine, 'connect')
        def disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, 'begin')
        def begin_immediate(connection):
            connection.exec_driver_sql('BEGIN IMMEDIATE')

        engine.dispose()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_redemptions_succeed_exactly_once(file_app):
    attempts = 8

    with file_app.app_context():
        admin_user = User.query.filter_by(role='admin').first()
        code = AccessCodeStore().issue(admin_user.id, 'admin_invite').code

    barrier = threading.Barrier(attempts)
    outcomes = []

    def attempt(index):
        with file_app.app_context():
            barrier.wait()
            try:
                RedemptionCoordinator().redeem(code, f'user{index}@y.com')
                outcomes.append('ok')
            except CodeAlreadyUsed:
                outcomes.append('used')
            except Exception as e:
                outcomes.append(type(e).__name__)

    threads = [threading.Thread(target=attempt, args=(index,)) for index in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ['ok'] + ['used'] * (attempts - 1)

    with file_app.app_context():
        access_code = AccessCode.query.filter_by(code=code).one()
        assert access_code.is_used is True
        assert AuditLog.query.filter_by(record_id=access_code.id, action='REDEEM').count() == 1
