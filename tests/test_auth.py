"""Tests for token authentication, login, registration and password reset."""
import dataclasses
import logging
import re
from datetime import timedelta

import jwt
import pytest
from django.utils import timezone
from rest_framework.test import APIRequestFactory

from ledger.authentication import TokenIssuer
from ledger.config import get_ledger_settings
from ledger.models import User
from ledger.views import ForgotPasswordView, LoginView, VerifyOtpView

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db

PROTECTED_URL = '/api/lending'
OTP_PATTERN = re.compile(r'\b(\d{6})\b')


def get_with_token(client, token):
    return client.get(PROTECTED_URL, HTTP_AUTHORIZATION=f'Bearer {token}')


class TestTokenGate:
    def test_valid_token(self, api_client, issuer, user) -> None:
        assert get_with_token(api_client, issuer.issue(user)).status_code == 200

    def test_missing_header(self, api_client) -> None:
        response = api_client.get(PROTECTED_URL)
        assert response.status_code == 401
        assert response['WWW-Authenticate'] == 'Bearer realm="api"'

    def test_other_scheme_is_not_accepted(self, api_client, issuer, user) -> None:
        response = api_client.get(PROTECTED_URL, HTTP_AUTHORIZATION=f'Token {issuer.issue(user)}')
        assert response.status_code == 401

    @pytest.mark.parametrize('header', ['Bearer', 'Bearer two parts'])
    def test_malformed_header(self, api_client, header) -> None:
        response = api_client.get(PROTECTED_URL, HTTP_AUTHORIZATION=header)
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_garbage_token(self, api_client) -> None:
        response = get_with_token(api_client, 'not.a.jwt')
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_expired_token(self, api_client, issuer, user) -> None:
        token = issuer.issue(user, issued_at=timezone.now() - timedelta(hours=25))
        response = get_with_token(api_client, token)
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_token_just_inside_lifetime(self, api_client, issuer, user) -> None:
        token = issuer.issue(user, issued_at=timezone.now() - timedelta(hours=23))
        assert get_with_token(api_client, token).status_code == 200

    def test_token_signed_with_another_key(self, api_client, user) -> None:
        forged = TokenIssuer(dataclasses.replace(get_ledger_settings(), jwt_secret='someone-else'))
        response = get_with_token(api_client, forged.issue(user))
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_deleted_user(self, api_client, issuer, user) -> None:
        token = issuer.issue(user)
        user.delete()
        response = get_with_token(api_client, token)
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_inactive_user(self, api_client, issuer, user) -> None:
        token = issuer.issue(user)
        User.objects.filter(pk=user.pk).update(status=User.STATUS_INACTIVE)
        response = get_with_token(api_client, token)
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    @pytest.mark.parametrize('claims', [
        {'user_id': 'not-a-uuid'},
        {'email': 'lender@example.com'},
    ])
    def test_bad_claims(self, api_client, claims) -> None:
        ledger_settings = get_ledger_settings()
        payload = dict(claims, exp=timezone.now() + timedelta(hours=1))
        token = jwt.encode(payload, ledger_settings.jwt_secret, algorithm=ledger_settings.jwt_algorithm)
        response = get_with_token(api_client, token)
        assert response.status_code == 401
        assert response.data == {'message': 'Token is not valid'}

    def test_reason_is_only_logged(self, api_client, issuer, user, caplog) -> None:
        token = issuer.issue(user, issued_at=timezone.now() - timedelta(hours=25))
        with caplog.at_level(logging.INFO, logger='ledger.authentication'):
            response = get_with_token(api_client, token)
        assert 'expired' not in str(response.data)
        assert 'Token rejected: expired' in caplog.text

    def test_verify_returns_current_user(self, auth_client, user) -> None:
        response = auth_client.get('/api/auth/verify')
        assert response.status_code == 200
        assert response.data['message'] == 'Token valid'
        assert response.data['user']['email'] == user.email
        assert 'password' not in response.data['user']


class TestLogin:
    def test_login_issues_usable_token(self, api_client, user) -> None:
        response = api_client.post('/api/auth/login', {'email': user.email, 'password': PASSWORD}, format='json')

        assert response.status_code == 200
        assert response.data['message'] == 'Login successful'
        assert response.data['user']['id'] == str(user.pk)
        assert get_with_token(api_client, response.data['token']).status_code == 200

    def test_email_is_case_insensitive(self, api_client, user) -> None:
        response = api_client.post('/api/auth/login', {'email': user.email.upper(), 'password': PASSWORD}, format='json')
        assert response.status_code == 200

    def test_failures_are_indistinguishable(self, api_client, make_user) -> None:
        known = make_user()
        inactive = make_user(status=User.STATUS_INACTIVE)

        attempts = [
            {'email': 'nobody@example.com', 'password': PASSWORD},
            {'email': known.email, 'password': 'wrong-password'},
            {'email': inactive.email, 'password': PASSWORD},
        ]
        responses = [api_client.post('/api/auth/login', body, format='json') for body in attempts]

        assert {r.status_code for r in responses} == {401}
        assert all(r.data == {'message': 'Invalid email or password'} for r in responses)

    def test_failure_reason_is_logged(self, api_client, user, caplog) -> None:
        with caplog.at_level(logging.INFO, logger='ledger.authentication'):
            api_client.post('/api/auth/login', {'email': user.email, 'password': 'nope-nope'}, format='json')
        assert 'wrong password' in caplog.text

    def test_missing_fields(self, api_client) -> None:
        response = api_client.post('/api/auth/login', {}, format='json')
        assert response.status_code == 400
        assert set(response.data['errors']) == {'email', 'password'}

    def test_stale_bearer_header_does_not_block_login(self, api_client, user) -> None:
        response = api_client.post(
            '/api/auth/login',
            {'email': user.email, 'password': PASSWORD},
            format='json',
            HTTP_AUTHORIZATION='Bearer expired-or-garbage',
        )
        assert response.status_code == 200


class TestRegister:
    payload = {
        'username': 'sunita',
        'email': 'Sunita@Example.com',
        'phone': '9123456780',
        'password': 'hunter22',
    }

    def test_register(self, api_client) -> None:
        response = api_client.post('/api/auth/register', self.payload, format='json')

        assert response.status_code == 201
        assert response.data['message'] == 'User registered successfully'
        assert response.data['token']
        assert response.data['user']['email'] == 'sunita@example.com'
        assert response.data['user']['status'] == 'Active'
        assert response.data['user']['isAdmin'] is False

        user = User.objects.get(username='sunita')
        assert user.check_password('hunter22')
        assert user.password != 'hunter22'

    def test_register_cannot_grant_admin(self, api_client) -> None:
        payload = dict(self.payload, isAdmin=True, status='Inactive')
        response = api_client.post('/api/auth/register', payload, format='json')
        assert response.status_code == 201
        user = User.objects.get(username='sunita')
        assert user.is_admin is False
        assert user.status == User.STATUS_ACTIVE

    @pytest.mark.parametrize('field', ['username', 'email', 'phone'])
    def test_duplicate_is_conflict(self, api_client, user, field) -> None:
        payload = dict(self.payload, **{field: getattr(user, field)})
        response = api_client.post('/api/auth/register', payload, format='json')
        assert response.status_code == 409
        assert response.data == {'message': 'User already exists with this email, username, or phone number'}

    def test_field_validation(self, api_client) -> None:
        response = api_client.post('/api/auth/register', {
            'username': 'ab',
            'email': 'not-an-email',
            'phone': '1234567890',
            'password': '123',
        }, format='json')
        assert response.status_code == 400
        errors = response.data['errors']
        assert errors['username'] == ['Username must be 3-30 characters']
        assert errors['email'] == ['Please provide a valid email']
        assert errors['phone'] == ['Please provide a valid 10-digit phone number']
        assert errors['password'] == ['Password must be at least 6 characters']


class TestPasswordReset:
    def request_otp(self, client, email, mailoutbox):
        response = client.post('/api/auth/forgot-password', {'email': email}, format='json')
        assert response.status_code == 200
        return OTP_PATTERN.search(mailoutbox[-1].body).group(1) if mailoutbox else None

    def test_full_reset_flow(self, api_client, user, mailoutbox) -> None:
        otp = self.request_otp(api_client, user.email, mailoutbox)

        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == [user.email]
        assert mailoutbox[0].subject == 'Password Reset OTP - Lending Ledger'

        user.refresh_from_db()
        assert user.reset_otp and user.reset_otp != otp

        verify = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': otp}, format='json')
        assert verify.status_code == 200

        reset = api_client.post('/api/auth/reset-password', {
            'email': user.email, 'otp': otp, 'password': 'brand-new-pass',
        }, format='json')
        assert reset.status_code == 200
        assert reset.data == {'message': 'Password reset successfully'}

        login = api_client.post('/api/auth/login', {'email': user.email, 'password': 'brand-new-pass'}, format='json')
        assert login.status_code == 200

        # A used code cannot be replayed
        replay = api_client.post('/api/auth/reset-password', {
            'email': user.email, 'otp': otp, 'password': 'another-pass',
        }, format='json')
        assert replay.status_code == 400

    def test_unknown_email_gets_the_same_answer(self, api_client, user, mailoutbox) -> None:
        known = api_client.post('/api/auth/forgot-password', {'email': user.email}, format='json')
        unknown = api_client.post('/api/auth/forgot-password', {'email': 'ghost@example.com'}, format='json')

        assert known.status_code == unknown.status_code == 200
        assert known.data == unknown.data
        assert len(mailoutbox) == 1

    def test_wrong_codes_invalidate_the_otp(self, api_client, user, mailoutbox) -> None:
        otp = self.request_otp(api_client, user.email, mailoutbox)
        wrong = '000000' if otp != '000000' else '111111'

        for _ in range(get_ledger_settings().otp_max_attempts):
            response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': wrong}, format='json')
            assert response.status_code == 400
            assert response.data['errors']['otp'] == ['Invalid or expired OTP']

        response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': otp}, format='json')
        assert response.status_code == 400
        user.refresh_from_db()
        assert user.reset_otp == ''

    def test_expired_otp(self, api_client, user, mailoutbox) -> None:
        otp = self.request_otp(api_client, user.email, mailoutbox)
        User.objects.filter(pk=user.pk).update(reset_otp_expires_at=timezone.now() - timedelta(seconds=1))

        response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': otp}, format='json')
        assert response.status_code == 400

    def test_new_request_replaces_old_code(self, api_client, user, mailoutbox) -> None:
        first = self.request_otp(api_client, user.email, mailoutbox)
        second = self.request_otp(api_client, user.email, mailoutbox)
        if first == second:
            pytest.skip('both requests drew the same code')

        response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': first}, format='json')
        assert response.status_code == 400
        response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': second}, format='json')
        assert response.status_code == 200

    def test_otp_format(self, api_client, user) -> None:
        response = api_client.post('/api/auth/verify-otp', {'email': user.email, 'otp': '12ab'}, format='json')
        assert response.status_code == 400
        assert response.data['errors']['otp'] == ['OTP must be 6 digits']

    def test_short_new_password(self, api_client, user, mailoutbox) -> None:
        otp = self.request_otp(api_client, user.email, mailoutbox)
        response = api_client.post('/api/auth/reset-password', {
            'email': user.email, 'otp': otp, 'password': '123',
        }, format='json')
        assert response.status_code == 400
        assert 'password' in response.data['errors']


class TestInjectedSettings:
    @pytest.fixture
    def factory(self):
        return APIRequestFactory()

    @pytest.fixture
    def strict_settings(self):
        return dataclasses.replace(
            get_ledger_settings(),
            jwt_secret='view-level-secret',
            otp_expire_minutes=1,
            otp_max_attempts=1,
        )

    def test_login_signs_with_the_view_settings(self, factory, user, strict_settings) -> None:
        view = LoginView.as_view(ledger_settings=strict_settings)
        request = factory.post('/api/auth/login', {'email': user.email, 'password': PASSWORD}, format='json')

        response = view(request)

        assert response.status_code == 200
        payload = TokenIssuer(strict_settings).decode(response.data['token'])
        assert payload['user_id'] == str(user.pk)
        with pytest.raises(jwt.InvalidSignatureError):
            TokenIssuer(get_ledger_settings()).decode(response.data['token'])

    def test_otp_flow_uses_the_view_settings(self, factory, user, strict_settings, mailoutbox) -> None:
        forgot = ForgotPasswordView.as_view(ledger_settings=strict_settings)
        verify = VerifyOtpView.as_view(ledger_settings=strict_settings)

        before = timezone.now()
        forgot(factory.post('/api/auth/forgot-password', {'email': user.email}, format='json'))
        user.refresh_from_db()
        assert user.reset_otp_expires_at <= before + timedelta(minutes=1, seconds=5)

        otp = OTP_PATTERN.search(mailoutbox[-1].body).group(1)
        wrong = '000000' if otp != '000000' else '111111'
        response = verify(factory.post('/api/auth/verify-otp', {'email': user.email, 'otp': wrong}, format='json'))
        assert response.status_code == 400

        # one allowed attempt, so the code is already gone
        user.refresh_from_db()
        assert user.reset_otp == ''
