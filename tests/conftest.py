"""Pytest fixtures: an in-memory SQLite app, a fake Redis and an admin identity."""

import pytest

from access_gate import create_app, db
from access_gate.exceptions import EmailDeliveryError
from access_gate.models import User
from access_gate.services import rate_limiter
from access_gate.utils import redis_session
from access_gate.utils.auth import Principal
from access_gate.utils.jwt_utils import create_jwt_token


class _FakeRedis:
    """Synchronous stand-in for the redis-py commands the app uses."""

    def __init__(self):
        self._values = {}
        self._expiry = {}
        self._sets = {}
        self.now = 0

    def advance(self, seconds):
        self.now += int(seconds)

    def _purge(self, key):
        expiry = self._expiry.get(key)
        if expiry is not None and self.now >= expiry:
            self._values.pop(key, None)
            self._expiry.pop(key, None)

    def ping(self):
        return True

    def get(self, key):
        self._purge(key)
        return self._values.get(key)

    def set(self, key, value, ex=None, nx=False):
        self._purge(key)
        if nx and key in self._values:
            return None
        self._values[key] = str(value)
        if ex is not None:
            self._expiry[key] = self.now + int(ex)
        else:
            self._expiry.pop(key, None)
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self._values or key in self._sets:
                removed += 1
            self._values.pop(key, None)
            self._expiry.pop(key, None)
            self._sets.pop(key, None)
        return removed

    def incrby(self, key, amount=1):
        self._purge(key)
        value = int(self._values.get(key, 0)) + amount
        self._values[key] = str(value)
        return value

    def ttl(self, key):
        self._purge(key)
        if key not in self._values:
            return -2
        expiry = self._expiry.get(key)
        if expiry is None:
            return -1
        return expiry - self.now

    def expire(self, key, seconds):
        self._purge(key)
        if key not in self._values:
            return False
        self._expiry[key] = self.now + int(seconds)
        return True

    def sadd(self, key, *members):
        bucket = self._sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    def smembers(self, key):
        return set(self._sets.get(key, set()))

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, client):
        self._client = client
        self._calls = []

    def __getattr__(self, name):
        command = getattr(self._client, name)

        def queue(*args, **kwargs):
            self._calls.append((command, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [command(*args, **kwargs) for command, args, kwargs in self._calls]
        self._calls = []
        return results


class RecordingEmailService:
    """Email service double that records invitations and can fail per address."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.invitations = []
        self.magic_links = []

    def send_invitation(self, to, name, access_code, expiry_hours=None):
        if to in self.failing:
            raise EmailDeliveryError()
        self.invitations.append({'to': to, 'name': name, 'code': access_code, 'expiry_hours': expiry_hours})
        return 'msg-invitation'

    def send_magic_link(self, to, name, magic_link_url, expiry_minutes=None):
        self.magic_links.append({'to': to, 'url': magic_link_url})
        return 'msg-magic-link'


@pytest.fixture
def fake_redis():
    return _FakeRedis()


@pytest.fixture
def app(fake_redis):
    redis_session.set_session_store(redis_session.RedisSessionStore(client=fake_redis))
    rate_limiter.set_rate_limiter(rate_limiter.RateLimiter(fake_redis))

    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

    redis_session.set_session_store(None)
    rate_limiter.set_rate_limiter(None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    """Principal of the admin user created on startup"""
    user = User.query.filter_by(role='admin').first()
    return Principal(id=str(user.id), email=user.email, role='admin')


@pytest.fixture
def admin_headers(admin):
    token, _ = create_jwt_token(admin.id, 'admin', admin.email)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def user_headers(app):
    user = User(email='member@example.com', name='Member', role='user', is_active=True)
    db.session.add(user)
    db.session.commit()
    token, _ = create_jwt_token(str(user.id), 'user', user.email)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def email_service():
    return RecordingEmailService()
