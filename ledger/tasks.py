# ledger/tasks.py
import logging

import pandas as pd
from celery import shared_task
from dateutil import parser as date_parser
from django.core.mail import send_mail
from django.db import transaction

from ledger.config import get_ledger_settings
from ledger.models import LendingRecord, User
from ledger.serializers import LendingRecordImportSerializer

logger = logging.getLogger(__name__)

# Normalised CSV header -> record serializer field
IMPORT_COLUMNS = {
    'name': 'name',
    'amount': 'amount',
    'rate_(%)': 'rateOfInterest',
    'rate_of_interest': 'rateOfInterest',
    'start_date': 'startDate',
    'renewal_date': 'renewalDate',
    'status': 'status',
    'notes': 'notes',
}
REQUIRED_IMPORT_FIELDS = ['name', 'amount', 'rateOfInterest', 'startDate', 'renewalDate']
DATE_FIELDS = ('startDate', 'renewalDate')


@shared_task
def send_password_reset_otp_task(email, otp, username):
    ledger_settings = get_ledger_settings()
    message = (
        f"Hello {username},\n\n"
        f"You have requested to reset your password. Please use the following OTP to proceed: {otp}\n\n"
        f"This OTP is valid for {ledger_settings.otp_expire_minutes} minutes only. Do not share it with anyone.\n"
        f"If you didn't request this, please ignore this email.\n"
    )
    send_mail(
        subject='Password Reset OTP - Lending Ledger',
        message=message,
        from_email=ledger_settings.mail_sender,
        recipient_list=[email],
    )
    logger.info("Password reset OTP mailed to %s", email)


def parse_import_date(value):
    """Dates in exported files are ISO, hand-made sheets are often MM/DD/YYYY."""
    if not value:
        return value
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError):
        # left as-is so the serializer reports it against the field
        return value


@shared_task
def ingest_records_task(file_path, created_by_id):
    created_by = User.objects.get(pk=created_by_id)

    df = pd.read_csv(file_path, dtype=str, keep_default_na=False, encoding='latin1')
    df.columns = df.columns.str.strip().str.replace(' ', '_').str.lower()
    df = df.rename(columns=IMPORT_COLUMNS)

    missing_cols = [col for col in REQUIRED_IMPORT_FIELDS if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing crucial columns in lending records CSV: {missing_cols}. Actual columns after cleaning: {list(df.columns)}")

    records_to_create = []
    skipped = 0

    for index, row in df.iterrows():
        data = {key: value.strip() for key, value in row.to_dict().items() if key in IMPORT_COLUMNS.values()}
        for field in DATE_FIELDS:
            data[field] = parse_import_date(data.get(field))
        if not data.get('status'):
            data.pop('status', None)

        serializer = LendingRecordImportSerializer(data=data)
        if not serializer.is_valid():
            skipped += 1
            logger.warning("Skipping lending record row %s: %s", index + 2, dict(serializer.errors))
            continue

        records_to_create.append(LendingRecord(created_by=created_by, **serializer.validated_data))

    with transaction.atomic():
        # bulk_create runs accrual on every record before the insert
        LendingRecord.objects.bulk_create(records_to_create)

    logger.info("Ingested %s lending records from %s (%s skipped)", len(records_to_create), file_path, skipped)
    return {'created': len(records_to_create), 'skipped': skipped}
