"""
Transactional email via the Resend REST API

When RESEND_API_KEY is not configured (local development, tests) messages are
logged instead of sent.
"""
from flask import current_app, render_template
import requests

from access_gate.exceptions import EmailDeliveryError
from access_gate.services.metrics_service import MetricsService


class EmailService:
    """Send templated emails through Resend"""

    def __init__(self, api_key=None, api_url=None, sender=None, timeout=None):
        config = current_app.config
        self.api_key = api_key if api_key is not None else config.get('RESEND_API_KEY')
        self.api_url = api_url or config.get('RESEND_API_URL', 'https://api.resend.com/emails')
        self.sender = sender or config.get('MAIL_FROM')
        self.timeout = timeout or config.get('EMAIL_TIMEOUT_SECONDS', 10)

    @property
    def is_configured(self):
        return bool(self.api_key)

    def send_email(self, to, subject, html, tags=None, template='generic'):
        """
        Send one email

        Returns:
            Provider message id, or None when delivery is only logged

        Raises:
            EmailDeliveryError: the provider rejected the message or was unreachable
        """
        if not self.is_configured:
            current_app.logger.info(f"Email not sent (Resend not configured): to={to} subject={subject!r}")
            MetricsService.track_email(template, 'logged')
            return None

        payload = {
            'from': self.sender,
            'to': [to],
            'subject': subject,
            'html': html,
        }
        if tags:
            payload['tags'] = tags

        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={'Authorization': f'Bearer {self.api_key}'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            current_app.logger.error(f"Email delivery to {to} failed: {e}")
            MetricsService.track_email(template, 'failed')
            raise EmailDeliveryError() from e

        if response.status_code >= 400:
            current_app.logger.error(
                f"Email provider rejected message to {to}: {response.status_code} {response.text[:200]}"
            )
            MetricsService.track_email(template, 'failed')
            raise EmailDeliveryError()

        MetricsService.track_email(template, 'sent')
        try:
            message_id = response.json().get('id')
        except ValueError:
            message_id = None
        current_app.logger.info(f"Email sent to {to} (id={message_id})")
        return message_id

    def send_invitation(self, to, name, access_code, expiry_hours=None):
        """Email an access code with a prefilled signup link"""
        expiry_hours = expiry_hours or current_app.config.get('ACCESS_CODE_TTL_HOURS', 24)
        invitation_url = build_invitation_url(access_code)
        html = render_template(
            'email/invitation.html',
            name=name,
            access_code=access_code,
            invitation_url=invitation_url,
            expiry_hours=expiry_hours,
        )
        return self.send_email(
            to,
            'Your access code is ready',
            html,
            tags=[{'name': 'category', 'value': 'access_invitation'}],
            template='invitation',
        )

    def send_magic_link(self, to, name, magic_link_url, expiry_minutes=None):
        expiry_minutes = expiry_minutes or current_app.config.get('MAGIC_LINK_EXP_MINUTES', 15)
        html = render_template(
            'email/magic_link.html',
            name=name,
            magic_link_url=magic_link_url,
            expiry_minutes=expiry_minutes,
        )
        return self.send_email(
            to,
            'Your sign-in link',
            html,
            tags=[{'name': 'category', 'value': 'magic_link'}],
            template='magic_link',
        )


def build_invitation_url(access_code):
    frontend_url = current_app.config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
    return f"{frontend_url}/auth/signup?accessCode={access_code}"
