# ledger/config.py
"""Process-wide ledger configuration."""
from dataclasses import dataclass
from datetime import timedelta

from django.apps import apps


@dataclass(frozen=True)
class LedgerSettings:
    jwt_secret: str
    jwt_algorithm: str = 'HS256'
    token_lifetime: timedelta = timedelta(hours=24)
    otp_expire_minutes: int = 10
    otp_max_attempts: int = 3
    mail_sender: str = 'no-reply@lending-ledger.local'
    expose_error_detail: bool = False

    @classmethod
    def from_django_settings(cls, django_settings):
        values = getattr(django_settings, 'LEDGER', {})
        secret = values.get('JWT_SECRET') or django_settings.SECRET_KEY
        return cls(
            jwt_secret=secret,
            jwt_algorithm=values.get('JWT_ALGORITHM', 'HS256'),
            token_lifetime=timedelta(hours=values.get('JWT_LIFETIME_HOURS', 24)),
            otp_expire_minutes=values.get('OTP_EXPIRE_MINUTES', 10),
            otp_max_attempts=values.get('OTP_MAX_ATTEMPTS', 3),
            mail_sender=values.get('MAIL_SENDER', 'no-reply@lending-ledger.local'),
            expose_error_detail=bool(django_settings.DEBUG),
        )


def get_ledger_settings():
    return apps.get_app_config('ledger').ledger_settings
