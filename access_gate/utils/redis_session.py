"""
Redis Session Store for Flask API

Reads sessions stored in Redis by Better Auth (Next.js frontend) and creates
sessions in the same format when a user signs up or signs in through this API,
so both sides see one session namespace.
"""
import json
import secrets
from datetime import datetime, timedelta, timezone
from flask import current_app
from access_gate.utils.routes_helpers import get_redis_connection


class RedisSessionStore:
    """
    Redis-based session store for Better Auth sessions
    Uses Redis database 2 (same as frontend) for session storage
    """

    def __init__(self, client=None):
        """Initialize Redis connection for session storage"""
        if client is not None:
            self.redis = client
            return

        session_db = current_app.config.get('REDIS_SESSION_DB', 2)
        try:
            self.redis = get_redis_connection(db=session_db)
            # Test connection
            self.redis.ping()
            current_app.logger.info(f"Redis session store connected (db {session_db})")
        except Exception as e:
            current_app.logger.error(f"Failed to connect to Redis for sessions: {e}")
            raise

    def get_session(self, token: str) -> dict | None:
        """
        Get session from Redis

        Args:
            token: Session token

        Returns:
            Session data dict or None if not found/expired
        """
        key = f"session:{token}"

        try:
            data = self.redis.get(key)
            if not data:
                current_app.logger.warning(f"[Redis] Session not found: {token[:8]}...")
                return None

            session = json.loads(data)

            # Check if expired
            expires_at_str = session.get('expiresAt')
            if expires_at_str:
                expires_at_str = str(expires_at_str).replace('Z', '+00:00')
                try:
                    expires_at = datetime.fromisoformat(expires_at_str)
                except ValueError:
                    # Fallback: millisecond epoch timestamp
                    expires_at = datetime.fromtimestamp(float(expires_at_str) / 1000, tz=timezone.utc)
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=timezone.utc)

                if expires_at < datetime.now(timezone.utc):
                    self.delete_session(token)
                    return None

            return session
        except json.JSONDecodeError as e:
            current_app.logger.error(f"Failed to decode session data: {e}")
            return None
        except Exception as e:
            current_app.logger.error(f"Redis session lookup failed: {e}")
            return None

    def create_session(self, user, ip_address: str = None, user_agent: str = None) -> dict:
        """
        Create a credentialed session for a user

        Args:
            user: User model instance

        Returns:
            Session data dict (includes the token)
        """
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        ttl = timedelta(days=current_app.config.get('SESSION_EXPIRES_DAYS', 7))
        user_id = str(user.id)

        session = {
            'id': secrets.token_hex(16),
            'token': token,
            'userId': user_id,
            'expiresAt': (now + ttl).isoformat().replace('+00:00', 'Z'),
            'createdAt': now.isoformat().replace('+00:00', 'Z'),
            'ipAddress': ip_address,
            'userAgent': user_agent,
            'user': {
                'id': user_id,
                'email': user.email,
                'name': user.name,
                'role': user.role,
                'isActive': user.is_active,
                'emailVerified': user.email_verified,
            },
            # Top-level fields for backwards compatibility
            'userEmail': user.email,
            'userRole': user.role,
        }

        self.redis.set(f"session:{token}", json.dumps(session), ex=int(ttl.total_seconds()))
        self.redis.sadd(f"user-sessions:{user_id}", token)
        current_app.logger.info(f"Created session for user {user_id}")
        return session

    def delete_session(self, token: str):
        """
        Delete session from Redis

        Args:
            token: Session token to delete
        """
        key = f"session:{token}"
        try:
            self.redis.delete(key)
            current_app.logger.info(f"Deleted session: {token[:8]}...")
        except Exception as e:
            current_app.logger.error(f"Failed to delete session: {e}")

    def health_check(self) -> bool:
        """
        Check if Redis connection is healthy

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self.redis.ping())
        except Exception:
            return False


# Global session store instance (initialized on first use)
_session_store = None


def get_session_store() -> RedisSessionStore:
    """
    Get or create Redis session store instance

    Returns:
        RedisSessionStore instance
    """
    global _session_store
    if _session_store is None:
        _session_store = RedisSessionStore()
    return _session_store


def set_session_store(store: RedisSessionStore | None):
    """Replace the global session store (None resets to lazy initialization)"""
    global _session_store
    _session_store = store
