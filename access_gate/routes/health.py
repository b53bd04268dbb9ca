"""
Health check routes
"""
from flask import Blueprint, jsonify, Response, current_app
from access_gate import db
from access_gate.utils.redis_session import get_session_store
from sqlalchemy import text
from access_gate.services.metrics_service import metrics_endpoint

health_bp = Blueprint('health', __name__)


@health_bp.route('/', methods=['GET'])
def health_check():
    """Basic health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'service': 'access-gate-api',
        'version': current_app.config.get('SEM_VER', '0.0.0')
    })


@health_bp.route('/database', methods=['GET'])
def database_health():
    """Database connectivity health check"""
    try:
        # Test database connection
        db.session.execute(text('SELECT 1'))

        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'message': 'Database connection successful'
        })
    except Exception as e:
        current_app.logger.error(f"Database health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': 'Database connection failed'
        }), 503


@health_bp.route('/detailed', methods=['GET'])
def detailed_health():
    """Detailed health check with component status"""
    health_status = {
        'status': 'healthy',
        'components': {}
    }

    overall_healthy = True

    # Check database
    try:
        db.session.execute(text('SELECT 1'))
        health_status['components']['database'] = {
            'status': 'healthy',
            'message': 'Connected'
        }
    except Exception as e:
        current_app.logger.error(f"Database health check failed: {e}")
        health_status['components']['database'] = {
            'status': 'unhealthy',
            'error': 'Database connection failed'
        }
        overall_healthy = False

    # Check Redis session store
    try:
        healthy = get_session_store().health_check()
    except Exception as e:
        current_app.logger.error(f"Session store health check failed: {e}")
        healthy = False

    if healthy:
        health_status['components']['session_store'] = {
            'status': 'healthy',
            'message': 'Connected'
        }
    else:
        health_status['components']['session_store'] = {
            'status': 'unhealthy',
            'error': 'Could not reach Redis'
        }
        overall_healthy = False

    if not overall_healthy:
        health_status['status'] = 'unhealthy'
        return jsonify(health_status), 503

    return jsonify(health_status)


@health_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(metrics_endpoint(), mimetype='text/plain')
