"""
Shared utility functions for route handlers
"""
import redis
from flask import request, jsonify, current_app
from access_gate import db

# One client per Redis database number
_redis_clients = {}


def get_redis_connection(db=0):
    """Get (cached) Redis connection for a database number"""
    client = _redis_clients.get(db)
    if client is None:
        timeout = current_app.config.get('REDIS_SOCKET_TIMEOUT', 5)
        client = redis.from_url(
            current_app.config.get('REDIS_URL', 'redis://localhost:6379'),
            db=db,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout
        )
        _redis_clients[db] = client
    return client


def get_json_body():
    """Request JSON body as a dict (empty dict when missing or not an object)"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_client_ip():
    """Client IP, preferring the first X-Forwarded-For hop when behind a proxy"""
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = request.headers.get('X-Real-IP')
    if real_ip:
        return real_ip

    return request.remote_addr or 'unknown'


def handle_db_error(error, message, status_code=500):
    """Handle database errors with consistent logging and rollback"""
    db.session.rollback()
    current_app.logger.error(f"{message}: {str(error)}")
    return jsonify({'error': message}), status_code
