"""Resend email delivery."""

from unittest import mock

import pytest
import requests

from access_gate.exceptions import EmailDeliveryError
from access_gate.services.email_service import EmailService


@pytest.fixture
def resend(app):
    app.config['RESEND_API_KEY'] = 're_test'
    return app


def test_logs_instead_of_sending_without_api_key(app, monkeypatch):
    post = mock.Mock()
    monkeypatch.setattr('access_gate.services.email_service.requests.post', post)

    assert EmailService().send_invitation('a@x.com', 'Ada', 'ABCDEFGHJKLM') is None
    post.assert_not_called()


def test_sends_rendered_invitation(resend, monkeypatch):
    response = mock.Mock(status_code=200)
    response.json.return_value = {'id': 'email-123'}
    post = mock.Mock(return_value=response)
    monkeypatch.setattr('access_gate.services.email_service.requests.post', post)

    message_id = EmailService().send_invitation('a@x.com', 'Ada', 'ABCDEFGHJKLM')

    assert message_id == 'email-123'
    payload = post.call_args.kwargs['json']
    assert payload['to'] == ['a@x.com']
    assert 'ABCDEFGHJKLM' in payload['html']
    assert '/auth/signup?accessCode=ABCDEFGHJKLM' in payload['html']
    assert post.call_args.kwargs['headers'] == {'Authorization': 'Bearer re_test'}
    assert post.call_args.kwargs['timeout'] == resend.config['EMAIL_TIMEOUT_SECONDS']


def test_provider_rejection_raises(resend, monkeypatch):
    monkeypatch.setattr('access_gate.services.email_service.requests.post',
                        mock.Mock(return_value=mock.Mock(status_code=422, text='invalid from')))

    with pytest.raises(EmailDeliveryError):
        EmailService().send_email('a@x.com', 'Subject', '<p>hi</p>')


def test_network_failure_raises(resend, monkeypatch):
    monkeypatch.setattr('access_gate.services.email_service.requests.post',
                        mock.Mock(side_effect=requests.Timeout('slow')))

    with pytest.raises(EmailDeliveryError):
        EmailService().send_magic_link('a@x.com', 'Ada', 'http://localhost:3000/auth/magic-link/verify?token=t')
