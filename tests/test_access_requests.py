"""Access request submission and the single pending -> reviewed transition."""

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from access_gate import db
from access_gate.exceptions import (
    AccessRequestNotFound,
    AccountAlreadyExists,
    AlreadyReviewed,
    DuplicatePendingRequest,
)
from access_gate.models import AccessRequest, AuditLog, User
from access_gate.services.access_requests import AccessRequestStore


@pytest.fixture
def store(app):
    return AccessRequestStore()


def test_submit_creates_pending_request(store):
    access_request = store.submit('  A@X.com ', 'Ada Lovelace', 'Please let me in')

    assert access_request.status == 'pending'
    assert access_request.email == 'a@x.com'
    assert access_request.requested_at is not None
    assert access_request.reviewed_at is None
    assert AuditLog.query.filter_by(record_id=access_request.id, action='CREATE').count() == 1


def test_second_pending_request_for_same_email_is_rejected(store):
    store.submit('a@x.com', 'Ada')

    with pytest.raises(DuplicatePendingRequest):
        store.submit('A@X.COM', 'Ada again')

    assert AccessRequest.query.filter_by(email='a@x.com').count() == 1


def test_pending_email_is_unique_at_storage_level(store):
    store.submit('a@x.com', 'Ada')

    db.session.add(AccessRequest(email='a@x.com', name='Ada', status='pending',
                                 requested_at=AccessRequest.query.first().requested_at))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_new_request_allowed_after_rejection(store, admin):
    first = store.submit('a@x.com', 'Ada')
    store.reject(first.id, admin.id, reason='Not yet')

    second = store.submit('a@x.com', 'Ada')
    assert second.id != first.id
    assert store.latest_for_email('a@x.com').id == second.id


def test_submit_rejects_existing_account(store):
    db.session.add(User(email='taken@x.com', name='Taken'))
    db.session.commit()

    with pytest.raises(AccountAlreadyExists):
        store.submit('taken@x.com', 'Someone')


def test_approve_sets_reviewer_and_timestamp(store, admin):
    access_request = store.submit('a@x.com', 'Ada')

    approved = store.approve(access_request.id, admin.id, reviewer_email=admin.email)

    assert approved.status == 'approved'
    assert str(approved.reviewed_by) == admin.id
    assert approved.reviewed_at is not None
    assert AuditLog.query.filter_by(record_id=access_request.id, action='APPROVE').count() == 1


def test_reject_records_reason(store, admin):
    access_request = store.submit('a@x.com', 'Ada')

    rejected = store.reject(access_request.id, admin.id, reason='  Duplicate account ')

    assert rejected.status == 'rejected'
    assert rejected.rejection_reason == 'Duplicate account'


@pytest.mark.parametrize('first,second', [
    ('approve', 'approve'),
    ('approve', 'reject'),
    ('reject', 'approve'),
    ('reject', 'reject'),
])
def test_status_never_changes_after_review(store, admin, first, second):
    access_request = store.submit('a@x.com', 'Ada')
    getattr(store, first)(access_request.id, admin.id)
    final_status = store.get(access_request.id).status

    with pytest.raises(AlreadyReviewed) as excinfo:
        getattr(store, second)(access_request.id, admin.id)

    assert store.get(access_request.id).status == final_status
    assert final_status in excinfo.value.message


def test_review_unknown_request(store, admin):
    with pytest.raises(AccessRequestNotFound):
        store.approve(uuid.uuid4(), admin.id)
    with pytest.raises(AccessRequestNotFound):
        store.reject('not-a-uuid', admin.id)


def test_batch_approve_counts_only_pending(store, admin):
    pending = store.submit('p@x.com', 'Pending Person')
    rejected = store.submit('r@x.com', 'Rejected Person')
    store.reject(rejected.id, admin.id)

    count = store.batch_approve([pending.id, rejected.id, uuid.uuid4(), 'garbage'], admin.id)

    assert count == 1
    assert store.get(pending.id).status == 'approved'
    assert store.get(rejected.id).status == 'rejected'
    assert AuditLog.query.filter_by(action='BULK_APPROVE').count() == 1


def test_latest_for_email_returns_none_when_unknown(store):
    assert store.latest_for_email('nobody@x.com') is None
