"""Pytest configuration and fixtures."""
import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from ledger.authentication import TokenIssuer
from ledger.config import get_ledger_settings
from ledger.models import LendingRecord, User

PASSWORD = 'secret123'


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def make_user(db):
    counter = itertools.count(10)

    def _make(**overrides):
        n = next(counter)
        fields = {
            'username': f'lender{n}',
            'email': f'lender{n}@example.com',
            'phone': f'98765432{n:02d}',
            'password': PASSWORD,
        }
        fields.update(overrides)
        return User.objects.create_user(**fields)

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def issuer():
    return TokenIssuer(get_ledger_settings())


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(issuer):
    def _client(for_user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {issuer.issue(for_user)}')
        return client

    return _client


@pytest.fixture
def auth_client(client_for, user):
    return client_for(user)


@pytest.fixture
def make_record(user, today):
    def _make(**overrides):
        fields = {
            'name': 'Ramesh Patil',
            'amount': Decimal('50000'),
            'rate_of_interest': Decimal('12'),
            'start_date': today,
            'renewal_date': today + timedelta(days=365),
            'created_by': user,
        }
        fields.update(overrides)
        return LendingRecord.objects.create(**fields)

    return _make
