import dataclasses
import logging

import pytest
from django.apps import apps
from rest_framework.exceptions import APIException

from ledger.exceptions import (
    AccrualBypassError,
    Conflict,
    InvalidAccrualInput,
    InvalidCredentials,
    LedgerError,
    SelfDeletionForbidden,
)
from ledger.models import LendingRecordQuerySet

pytestmark = pytest.mark.django_db

SUMMARY_URL = '/api/lending/summary'


def failing_summary(exc):
    def summary(self, today):
        raise exc
    return summary


@pytest.fixture
def ledger_config():
    return apps.get_app_config('ledger')


def test_unexpected_error_is_hidden(auth_client, monkeypatch, caplog) -> None:
    monkeypatch.setattr(LendingRecordQuerySet, 'summary', failing_summary(RuntimeError('db password is hunter2')))

    response = auth_client.get(SUMMARY_URL)

    assert response.status_code == 500
    assert response.data == {'message': 'Server error'}
    assert 'db password is hunter2' in caplog.text


def test_debug_mode_includes_detail(auth_client, monkeypatch, ledger_config) -> None:
    monkeypatch.setattr(LendingRecordQuerySet, 'summary', failing_summary(RuntimeError('boom')))
    monkeypatch.setattr(
        ledger_config, 'ledger_settings',
        dataclasses.replace(ledger_config.ledger_settings, expose_error_detail=True),
    )

    response = auth_client.get(SUMMARY_URL)

    assert response.status_code == 500
    assert response.data == {'message': 'Server error', 'error': 'boom'}


def test_bulk_bypass_is_a_server_error(auth_client, monkeypatch) -> None:
    monkeypatch.setattr(LendingRecordQuerySet, 'summary', failing_summary(AccrualBypassError('no')))
    assert auth_client.get(SUMMARY_URL).status_code == 500


def test_accrual_rejection_is_a_validation_error(auth_client, monkeypatch, caplog) -> None:
    monkeypatch.setattr(
        LendingRecordQuerySet, 'summary', failing_summary(InvalidAccrualInput('renewal_date must be after start_date')),
    )

    with caplog.at_level(logging.WARNING, logger='ledger.handlers'):
        response = auth_client.get(SUMMARY_URL)

    assert response.status_code == 400
    assert response.data == {
        'message': 'Validation failed',
        'errors': {'non_field_errors': ['renewal_date must be after start_date']},
    }
    assert 'Accrual rejected' in caplog.text


def test_unknown_route_under_api(auth_client) -> None:
    assert auth_client.get('/api/lending/not-a-uuid').status_code == 404


def test_health_needs_no_token(api_client) -> None:
    response = api_client.get('/health')
    assert response.status_code == 200
    assert response.data == {'status': 'OK', 'message': 'Server is healthy'}


def test_requests_are_logged(api_client, caplog) -> None:
    with caplog.at_level(logging.INFO, logger='ledger.middleware'):
        api_client.get('/health', HTTP_ORIGIN='http://localhost:5173')
    assert 'GET /health - Origin: http://localhost:5173' in caplog.text


def test_exception_hierarchy() -> None:
    assert issubclass(InvalidAccrualInput, LedgerError)
    assert issubclass(InvalidAccrualInput, ValueError)
    assert issubclass(AccrualBypassError, LedgerError)
    assert Conflict.status_code == 409
    assert InvalidCredentials.status_code == 401
    assert SelfDeletionForbidden.status_code == 400
    assert all(issubclass(cls, APIException) for cls in (Conflict, InvalidCredentials, SelfDeletionForbidden))
