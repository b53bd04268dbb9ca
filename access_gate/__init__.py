"""
Flask application factory
"""
import os
from flask import Flask, jsonify
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy

# API Configuration
API_VERSION = 'v0'

# Initialize extensions
db = SQLAlchemy()


def create_app(config_name=None):
    """Create Flask application with configuration"""
    app = Flask(__name__)

    # Load configuration
    config_name = config_name or os.environ.get('FLASK_ENV', 'development')

    from config import config
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)

    # Initialize metrics service
    if app.config.get('METRICS_ENABLED', True):
        from access_gate.services.metrics_service import metrics_service
        metrics_service.init_app(app)

    allowed_origins = [app.config['FRONTEND_URL']]

    # Build CORS allowed origins list based on environment
    if app.config.get('DEBUG', False) or app.config.get('ENV') == 'development':
        if app.config.get('ALLOWED_ORIGINS'):
            allowed_origins.extend(app.config['ALLOWED_ORIGINS'])

    CORS(app, origins=allowed_origins, supports_credentials=True)

    # Auto-initialize database on startup
    with app.app_context():
        from access_gate.utils.db_init import auto_initialize_database
        auto_initialize_database()

    # Register blueprints with API versioning
    from access_gate.routes.health import health_bp
    from access_gate.routes.admin import admin_bp
    from access_gate.routes.auth import auth_bp

    api_prefix = f'/api/{API_VERSION}'
    app.register_blueprint(health_bp, url_prefix=f'{api_prefix}/health')
    app.register_blueprint(admin_bp, url_prefix=f'{api_prefix}/admin')
    app.register_blueprint(auth_bp, url_prefix=f'{api_prefix}/auth')

    # Error handlers
    from access_gate.exceptions import AccessGateError
    from access_gate.utils.response import error_response

    @app.errorhandler(AccessGateError)
    def access_gate_error(error):
        db.session.rollback()
        body = error_response(
            error.message,
            details=error.details,
            error_code=error.error_code,
            **error.extra()
        )
        response = jsonify(body)
        response.status_code = error.status_code
        if error.retry_after is not None:
            response.headers['Retry-After'] = str(error.retry_after)
        return response

    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Resource not found'}, 404

    @app.errorhandler(500)
    def internal_error(error):
        return {'error': 'Internal server error'}, 500

    return app
