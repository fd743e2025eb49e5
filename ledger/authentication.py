# ledger/authentication.py
"""Bearer-token issuing and verification.

Tokens are HS256 JWTs that carry the user id and expire after a fixed
lifetime. Every failure is reported to the client with one generic message;
the actual reason only goes to the log.
"""
import logging
import uuid

import jwt
from django.utils import timezone
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .config import get_ledger_settings
from .exceptions import InvalidCredentials
from .models import User

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = 'Token is not valid'


class TokenIssuer:
    def __init__(self, ledger_settings):
        self.settings = ledger_settings

    def issue(self, user, issued_at=None):
        issued_at = issued_at or timezone.now()
        payload = {
            'user_id': str(user.pk),
            'email': user.email,
            'is_admin': user.is_admin,
            'iat': issued_at,
            'exp': issued_at + self.settings.token_lifetime,
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def decode(self, token):
        return jwt.decode(
            token,
            self.settings.jwt_secret,
            algorithms=[self.settings.jwt_algorithm],
            options={'require': ['exp', 'user_id']},
        )


def reject_token(reason, **context):
    logger.info("Token rejected: %s %s", reason, context or '')
    raise exceptions.AuthenticationFailed(INVALID_TOKEN_MESSAGE)


def reject_login(reason, email):
    logger.info("Login rejected for %s: %s", email, reason)
    raise InvalidCredentials()


class BearerTokenAuthentication(BaseAuthentication):
    keyword = 'Bearer'

    def __init__(self, issuer=None):
        self.issuer = issuer or TokenIssuer(get_ledger_settings())

    def authenticate(self, request):
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            reject_token('malformed authorization header')
        try:
            token = auth[1].decode()
        except UnicodeError:
            reject_token('token is not valid utf-8')

        return self.authenticate_token(token)

    def authenticate_token(self, token):
        try:
            payload = self.issuer.decode(token)
        except jwt.ExpiredSignatureError:
            reject_token('expired')
        except jwt.InvalidTokenError as exc:
            reject_token('invalid', error=str(exc))

        try:
            user_id = uuid.UUID(str(payload['user_id']))
        except ValueError:
            reject_token('unparsable user id', user_id=payload['user_id'])

        user = User.objects.filter(pk=user_id).first()
        if user is None:
            reject_token('user does not exist', user_id=str(user_id))
        if not user.has_active_status:
            reject_token('user is inactive', user_id=str(user_id))

        return user, payload

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'


def authenticate_credentials(email, password):
    """Resolve an email/password pair to an active user or raise InvalidCredentials."""
    user = User.objects.filter(email=email).first()
    if user is None:
        # hash anyway so a missing account takes as long as a wrong password
        User().set_password(password)
        reject_login('no such user', email)
    if not user.check_password(password):
        reject_login('wrong password', email)
    if not user.has_active_status:
        reject_login('account inactive', email)
    return user
