"""Admin endpoints for reviewing requests and issuing invitations."""

import uuid

import pytest

from access_gate.models import AccessCode
from access_gate.services.access_requests import AccessRequestStore
from access_gate.services.invitations import InvitationOrchestrator

API = '/api/v0/admin'


@pytest.fixture(autouse=True)
def recording_orchestrator(monkeypatch, email_service):
    monkeypatch.setattr(
        'access_gate.routes.admin.get_orchestrator',
        lambda: InvitationOrchestrator(email_service=email_service)
    )


@pytest.fixture
def pending_request(app):
    return AccessRequestStore().submit('a@x.com', 'Ada')


def test_admin_routes_require_authentication(client, pending_request):
    response = client.post(f'{API}/access-requests/{pending_request.id}/approve')
    assert response.status_code == 401


def test_admin_routes_require_admin_role(client, pending_request, user_headers):
    response = client.post(f'{API}/access-requests/{pending_request.id}/approve', headers=user_headers)
    assert response.status_code == 403


def test_approve_then_approve_again(client, pending_request, admin_headers):
    url = f'{API}/access-requests/{pending_request.id}/approve'

    first = client.post(url, headers=admin_headers)
    assert first.status_code == 200
    assert first.get_json()['request']['status'] == 'approved'

    second = client.post(url, headers=admin_headers)
    assert second.status_code == 400
    assert second.get_json()['error_code'] == 'already_reviewed'


def test_reject_with_reason(client, pending_request, admin_headers):
    response = client.post(
        f'{API}/access-requests/{pending_request.id}/reject',
        json={'reason': 'Unknown organisation'},
        headers=admin_headers
    )

    assert response.status_code == 200
    assert response.get_json()['request']['rejection_reason'] == 'Unknown organisation'


def test_approve_unknown_request(client, admin_headers):
    response = client.post(f'{API}/access-requests/{uuid.uuid4()}/approve', headers=admin_headers)
    assert response.status_code == 404


def test_batch_approve_and_send(client, admin_headers, email_service):
    store = AccessRequestStore()
    first = store.submit('one@x.com', 'One')
    second = store.submit('two@x.com', 'Two')
    ids = [str(first.id), str(second.id)]

    approve = client.post(f'{API}/access-requests/batch-approve', json={'request_ids': ids}, headers=admin_headers)
    assert approve.get_json()['count'] == 2

    send = client.post(f'{API}/access-requests/batch-send-invitations',
                       json={'request_ids': ids}, headers=admin_headers)

    assert send.status_code == 200
    body = send.get_json()
    assert body['summary'] == {'total': 2, 'successful': 2, 'failed': 0}
    assert {sent['to'] for sent in email_service.invitations} == {'one@x.com', 'two@x.com'}
    assert AccessCode.query.filter_by(generation_type='user_request').count() == 2


def test_batch_send_partial_failure_is_still_ok(client, admin_headers, pending_request):
    response = client.post(f'{API}/access-requests/batch-send-invitations',
                           json={'request_ids': [str(pending_request.id)]}, headers=admin_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['results'] == []
    assert body['errors'][0]['error_code'] == 'request_not_approved'


@pytest.mark.parametrize('body', [{}, {'request_ids': []}, {'request_ids': 'abc'}, {'request_ids': ['nope']}])
def test_batch_input_validation(client, admin_headers, body):
    response = client.post(f'{API}/access-requests/batch-send-invitations', json=body, headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'validation_error'


def test_resend_invitation(client, admin_headers, pending_request, email_service):
    client.post(f'{API}/access-requests/{pending_request.id}/approve', headers=admin_headers)
    client.post(f'{API}/access-requests/batch-send-invitations',
                json={'request_ids': [str(pending_request.id)]}, headers=admin_headers)

    response = client.post(f'{API}/access-requests/{pending_request.id}/resend-invitation', headers=admin_headers)

    assert response.status_code == 200
    assert len(email_service.invitations) == 2


def test_generate_access_code(client, admin_headers, email_service):
    response = client.post(f'{API}/access-codes', json={'email': 'New@X.com', 'expiry_hours': 48},
                           headers=admin_headers)

    assert response.status_code == 201
    body = response.get_json()
    assert len(body['access_code']) == 12
    assert body['expiry_hours'] == 48
    assert body['email_sent'] is True
    assert email_service.invitations[0]['to'] == 'new@x.com'
    assert email_service.invitations[0]['expiry_hours'] == 48
    assert AccessCode.query.filter_by(code=body['access_code']).one().generation_type == 'admin_invite'


def test_generate_access_code_rejects_bad_input(client, admin_headers):
    response = client.post(f'{API}/access-codes', json={'email': 'not-an-email'}, headers=admin_headers)
    assert response.status_code == 400

    response = client.post(f'{API}/access-codes', json={'expiry_hours': 0}, headers=admin_headers)
    assert response.status_code == 400
