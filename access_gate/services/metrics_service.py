"""
Prometheus metrics service for Flask application
"""
import time
from flask import request, g
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest
from prometheus_client.core import REGISTRY

# Initialize metrics
REQUEST_COUNT = Counter(
    'flask_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

REQUEST_DURATION = Histogram(
    'flask_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

REQUEST_EXCEPTIONS = Counter(
    'flask_http_request_exceptions_total',
    'Total number of HTTP request exceptions',
    ['method', 'endpoint', 'exception']
)

ACTIVE_REQUESTS = Gauge(
    'flask_http_requests_active',
    'Number of active HTTP requests'
)

# Business metrics
ACCESS_REQUESTS_SUBMITTED = Counter(
    'access_requests_submitted_total',
    'Total number of access requests submitted'
)

ACCESS_REQUESTS_REVIEWED = Counter(
    'access_requests_reviewed_total',
    'Total number of access requests reviewed',
    ['decision']
)

ACCESS_CODES_ISSUED = Counter(
    'access_codes_issued_total',
    'Total number of access codes issued',
    ['generation_type']
)

ACCESS_CODE_REDEMPTIONS = Counter(
    'access_code_redemptions_total',
    'Access code redemption attempts by outcome',
    ['outcome']
)

INVITATION_EMAILS = Counter(
    'invitation_emails_total',
    'Outbound e-mails by template and delivery status',
    ['template', 'status']
)

RATE_LIMIT_DECISIONS = Counter(
    'rate_limit_decisions_total',
    'Rate limiter decisions by policy and outcome',
    ['policy', 'outcome']
)

# Application info
APP_INFO = Info(
    'flask_app_info',
    'Flask application information'
)


class MetricsService:
    """Service for managing Prometheus metrics"""

    def __init__(self, app=None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize metrics service with Flask app"""
        self.app = app

        APP_INFO.info({
            'version': app.config.get('SEM_VER', '0.0.0'),
            'environment': app.config.get('ENVIRONMENT', 'development')
        })

        # Register before/after request handlers
        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.teardown_request(self._teardown_request)

    def _before_request(self):
        """Track request start time and increment active requests"""
        g.start_time = time.time()
        ACTIVE_REQUESTS.inc()

    def _after_request(self, response):
        """Track request completion metrics"""
        try:
            request_duration = time.time() - g.start_time

            endpoint = request.endpoint or 'unknown'
            method = request.method
            status_code = str(response.status_code)

            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()

            REQUEST_DURATION.labels(
                method=method,
                endpoint=endpoint
            ).observe(request_duration)

        except Exception as e:
            # Don't let metrics tracking break the request
            self.app.logger.error(f"Error tracking metrics: {e}")

        return response

    def _teardown_request(self, exception):
        """Handle request teardown and exceptions"""
        try:
            ACTIVE_REQUESTS.dec()

            if exception:
                REQUEST_EXCEPTIONS.labels(
                    method=request.method,
                    endpoint=request.endpoint or 'unknown',
                    exception=type(exception).__name__
                ).inc()
        except Exception as e:
            if self.app:
                self.app.logger.error(f"Error in metrics teardown: {e}")

    @staticmethod
    def track_access_request_submitted():
        ACCESS_REQUESTS_SUBMITTED.inc()

    @staticmethod
    def track_access_request_reviewed(decision, count=1):
        """Track approve/reject decisions"""
        if count:
            ACCESS_REQUESTS_REVIEWED.labels(decision=decision).inc(count)

    @staticmethod
    def track_access_code_issued(generation_type):
        ACCESS_CODES_ISSUED.labels(generation_type=generation_type).inc()

    @staticmethod
    def track_redemption(outcome):
        """Track redemption outcome (success, not_found, already_used, expired, account_exists, partial_failure)"""
        ACCESS_CODE_REDEMPTIONS.labels(outcome=outcome).inc()

    @staticmethod
    def track_email(template, status):
        INVITATION_EMAILS.labels(template=template, status=status).inc()

    @staticmethod
    def track_rate_limit(policy, outcome):
        RATE_LIMIT_DECISIONS.labels(policy=policy, outcome=outcome).inc()


def metrics_endpoint():
    """Generate Prometheus metrics endpoint response"""
    return generate_latest(REGISTRY)


# Initialize global metrics service instance
metrics_service = MetricsService()
