# ledger/serializers.py
import logging
from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal

import pandas as pd
from dateutil.parser import isoparse
from django.contrib.auth.hashers import check_password, make_password
from django.db.models import Q
from django.utils import timezone
from django.utils.crypto import get_random_string
from rest_framework import serializers
from rest_framework.fields import SkipField

from .accrual import accrue
from .authentication import authenticate_credentials
from .exceptions import Conflict
from .models import MAX_AMOUNT, LendingRecord, User

logger = logging.getLogger(__name__)

PHONE_PATTERN = r'^[6-9]\d{9}$'
INVALID_OTP_MESSAGE = 'Invalid or expired OTP'

EXPORT_COLUMNS = ['Name', 'Amount', 'Rate (%)', 'Start Date', 'Renewal Date', 'Interest', 'Total', 'Status', 'Notes']


class CalendarDateField(serializers.DateField):
    """Accepts YYYY-MM-DD as well as the full ISO timestamps browsers send."""

    def to_internal_value(self, value):
        if isinstance(value, str) and 'T' in value:
            try:
                return isoparse(value).date()
            except ValueError:
                self.fail('invalid', format='YYYY-MM-DD')
        return super().to_internal_value(value)


class AmountField(serializers.DecimalField):
    def __init__(self, **kwargs):
        kwargs.setdefault('error_messages', {
            'min_value': 'Amount must be greater than 0',
            'max_value': 'Amount cannot exceed 1 crore',
        })
        super().__init__(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), max_value=MAX_AMOUNT, **kwargs)


class RateField(serializers.DecimalField):
    def __init__(self, **kwargs):
        kwargs.setdefault('error_messages', {
            'min_value': 'Interest rate cannot be negative',
            'max_value': 'Interest rate cannot exceed 100%%',
        })
        super().__init__(max_digits=5, decimal_places=2, min_value=Decimal('0'), max_value=Decimal('100'), **kwargs)


def check_date_order(start_date, renewal_date, errors):
    if start_date is not None and renewal_date is not None and renewal_date <= start_date:
        errors.setdefault('renewalDate', ['Renewal date must be after start date'])


class DateOrderMixin:
    """Checks renewalDate > startDate, merged with the stored record on updates.

    The check is also run when other fields fail, so a single response
    lists every violation.
    """

    def merged_date(self, attrs, source):
        return attrs.get(source, getattr(self.instance, source, None))

    def submitted_date(self, data, name):
        field = self.fields[name]
        try:
            return field.run_validation(field.get_value(data))
        except (serializers.ValidationError, SkipField):
            return getattr(self.instance, field.source, None)

    def to_internal_value(self, data):
        try:
            return super().to_internal_value(data)
        except serializers.ValidationError as exc:
            if not isinstance(exc.detail, Mapping) or not isinstance(data, Mapping):
                raise
            errors = dict(exc.detail)
            check_date_order(self.submitted_date(data, 'startDate'), self.submitted_date(data, 'renewalDate'), errors)
            raise serializers.ValidationError(errors)

    def validate(self, attrs):
        errors = {}
        check_date_order(self.merged_date(attrs, 'start_date'), self.merged_date(attrs, 'renewal_date'), errors)
        if errors:
            raise serializers.ValidationError(errors)
        return attrs


# --- Lending records ---

class CreatedBySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username']


class LendingRecordSerializer(DateOrderMixin, serializers.ModelSerializer):
    name = serializers.CharField(max_length=100, error_messages={
        'blank': 'Name is required and must be less than 100 characters',
        'max_length': 'Name is required and must be less than 100 characters',
    })
    amount = AmountField()
    rateOfInterest = RateField(source='rate_of_interest')
    startDate = CalendarDateField(source='start_date', error_messages={'invalid': 'Please provide a valid start date'})
    renewalDate = CalendarDateField(source='renewal_date', error_messages={'invalid': 'Please provide a valid renewal date'})
    status = serializers.ChoiceField(choices=LendingRecord.STATUS_CHOICES, required=False)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, trim_whitespace=False,
                                  error_messages={'max_length': 'Notes cannot exceed 500 characters'})
    createdBy = CreatedBySerializer(source='created_by', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    # Imports carry historical loans, so only live requests get the backdating rule
    enforce_start_window = True

    class Meta:
        model = LendingRecord
        fields = ['id', 'name', 'amount', 'rateOfInterest', 'startDate', 'renewalDate',
                  'interest', 'total', 'status', 'notes', 'createdBy', 'createdAt', 'updatedAt']
        read_only_fields = ['id', 'interest', 'total']

    def validate_startDate(self, value):
        if self.instance is None and self.enforce_start_window:
            earliest = timezone.localdate() - timedelta(days=1)
            if value < earliest:
                raise serializers.ValidationError('Start date cannot be more than one day in the past')
        return value

    def create(self, validated_data):
        # New records always start out Active
        validated_data.pop('status', None)
        return super().create(validated_data)


class LendingRecordImportSerializer(LendingRecordSerializer):
    enforce_start_window = False


class AccrualPreviewSerializer(DateOrderMixin, serializers.Serializer):
    amount = AmountField()
    rateOfInterest = RateField(source='rate_of_interest')
    startDate = CalendarDateField(source='start_date')
    renewalDate = CalendarDateField(source='renewal_date')

    def get_accrual(self):
        data = self.validated_data
        accrual = accrue(data['amount'], data['rate_of_interest'], data['start_date'], data['renewal_date'])
        return {
            'interest': accrual.interest,
            'total': accrual.total,
            'days': accrual.days,
        }


class PageQuerySerializer(serializers.Serializer):
    """Shared paging/sorting query parameters. Subclasses set SORT_FIELDS."""
    SORT_FIELDS = {}

    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)
    search = serializers.CharField(required=False, allow_blank=True, default='')
    sortOrder = serializers.ChoiceField(source='sort_order', choices=['asc', 'desc'], default='desc')

    def get_ordering(self):
        field = self.SORT_FIELDS[self.validated_data['sort_by']]
        prefix = '-' if self.validated_data['sort_order'] == 'desc' else ''
        # pk keeps pages stable when the sort key has ties
        return [prefix + field, prefix + 'id']


class RecordListQuerySerializer(PageQuerySerializer):
    SORT_FIELDS = {
        'name': 'name',
        'amount': 'amount',
        'rateOfInterest': 'rate_of_interest',
        'startDate': 'start_date',
        'renewalDate': 'renewal_date',
        'interest': 'interest',
        'total': 'total',
        'status': 'status',
        'notes': 'notes',
        'createdAt': 'created_at',
        'updatedAt': 'updated_at',
    }

    sortBy = serializers.ChoiceField(source='sort_by', choices=list(SORT_FIELDS), default='createdAt')
    status = serializers.ChoiceField(choices=LendingRecord.STATUS_CHOICES, required=False, allow_blank=True)
    startDate = CalendarDateField(source='start_from', required=False)
    endDate = CalendarDateField(source='start_to', required=False)

    def validate(self, attrs):
        start_from, start_to = attrs.get('start_from'), attrs.get('start_to')
        if start_from and start_to and start_to < start_from:
            raise serializers.ValidationError({'endDate': ['End date must not be before start date']})
        return attrs

    def filter_queryset(self, queryset):
        params = self.validated_data
        queryset = queryset.search(params['search'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('start_from'):
            queryset = queryset.filter(start_date__gte=params['start_from'])
        if params.get('start_to'):
            queryset = queryset.filter(start_date__lte=params['start_to'])
        return queryset.order_by(*self.get_ordering())


class LendingSummarySerializer(serializers.Serializer):
    totalAmountLended = serializers.DecimalField(max_digits=16, decimal_places=2, source='total_amount_lended')
    totalInterestExpected = serializers.DecimalField(max_digits=16, decimal_places=2, source='total_interest_expected')
    interestNext1Month = serializers.DecimalField(max_digits=16, decimal_places=2, source='interest_next_1_month')
    interestNext6Months = serializers.DecimalField(max_digits=16, decimal_places=2, source='interest_next_6_months')
    interestNext1Year = serializers.DecimalField(max_digits=16, decimal_places=2, source='interest_next_1_year')
    activeRecords = serializers.IntegerField(source='active_records')
    completedRecords = serializers.IntegerField(source='completed_records')
    overdueRecords = serializers.IntegerField(source='overdue_records')
    totalRecords = serializers.IntegerField(source='total_records')


class RecordExportSerializer(serializers.Serializer):
    recordIds = serializers.ListField(
        source='record_ids',
        child=serializers.UUIDField(),
        allow_empty=False,
        error_messages={'empty': 'No records selected for download'},
    )
    format = serializers.ChoiceField(choices=['json', 'csv'], default='json')

    def get_records(self):
        return LendingRecord.objects.filter(pk__in=self.validated_data['record_ids']).select_related('created_by')

    def render_csv(self, records):
        rows = [
            [
                record.name,
                record.amount,
                record.rate_of_interest,
                record.start_date.isoformat(),
                record.renewal_date.isoformat(),
                record.interest,
                record.total,
                record.status,
                record.notes or '',
            ]
            for record in records
        ]
        frame = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        return frame.to_csv(index=False, lineterminator='\n')


# --- Users ---

class UserSerializer(serializers.ModelSerializer):
    """Public user fields. Password and reset fields never leave the server."""
    isAdmin = serializers.BooleanField(source='is_admin', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'phone', 'status', 'isAdmin', 'createdAt', 'updatedAt']
        read_only_fields = fields


class UserWriteSerializer(serializers.ModelSerializer):
    username = serializers.CharField(min_length=3, max_length=30,
                                     error_messages={'min_length': 'Username must be 3-30 characters',
                                                     'max_length': 'Username must be 3-30 characters'})
    email = serializers.EmailField(error_messages={'invalid': 'Please provide a valid email'})
    phone = serializers.RegexField(PHONE_PATTERN,
                                   error_messages={'invalid': 'Please provide a valid 10-digit phone number'})
    password = serializers.CharField(min_length=6, write_only=True, trim_whitespace=False,
                                     error_messages={'min_length': 'Password must be at least 6 characters'})
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES, required=False,
                                     error_messages={'invalid_choice': 'Status must be Active or Inactive'})
    isAdmin = serializers.BooleanField(source='is_admin', required=False)

    class Meta:
        model = User
        fields = ['username', 'email', 'phone', 'password', 'status', 'isAdmin']

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        self.check_conflicts(attrs)
        return attrs

    def check_conflicts(self, attrs):
        lookups = Q()
        for field in ('username', 'email', 'phone'):
            if field in attrs:
                lookups |= Q(**{field: attrs[field]})
        if not lookups:
            return

        existing = User.objects.filter(lookups)
        if self.instance is not None:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise Conflict()

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        if password:
            instance.set_password(password)
        return super().update(instance, validated_data)

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class RegisterSerializer(UserWriteSerializer):
    class Meta(UserWriteSerializer.Meta):
        fields = ['username', 'email', 'phone', 'password']

    def create(self, validated_data):
        validated_data['status'] = User.STATUS_ACTIVE
        return super().create(validated_data)


class UserListQuerySerializer(PageQuerySerializer):
    SORT_FIELDS = {
        'username': 'username',
        'email': 'email',
        'phone': 'phone',
        'status': 'status',
        'isAdmin': 'is_admin',
        'createdAt': 'created_at',
        'updatedAt': 'updated_at',
    }

    sortBy = serializers.ChoiceField(source='sort_by', choices=list(SORT_FIELDS), default='createdAt')

    def filter_queryset(self, queryset):
        term = self.validated_data['search']
        if term:
            queryset = queryset.filter(
                Q(username__icontains=term) | Q(email__icontains=term) | Q(phone__icontains=term)
            )
        return queryset.order_by(*self.get_ordering())


# --- Authentication ---

class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={'invalid': 'Please provide a valid email'})
    password = serializers.CharField(trim_whitespace=False, error_messages={'blank': 'Password is required'})

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        self.user = authenticate_credentials(attrs['email'], attrs['password'])
        return attrs


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={'invalid': 'Please provide a valid email'})

    def validate_email(self, value):
        return value.strip().lower()

    def issue_otp(self):
        """Store a fresh OTP for the account, returning (user, otp) or None for unknown or inactive accounts."""
        email = self.validated_data['email']
        user = User.objects.filter(email=email).first()
        if user is None or not user.has_active_status:
            logger.info("Password reset requested for unknown or inactive account %s", email)
            return None

        ledger_settings = self.context['ledger_settings']
        otp = get_random_string(6, allowed_chars='0123456789')
        user.reset_otp = make_password(otp)
        user.reset_otp_expires_at = timezone.now() + timedelta(minutes=ledger_settings.otp_expire_minutes)
        user.reset_otp_attempts = 0
        user.save(update_fields=['reset_otp', 'reset_otp_expires_at', 'reset_otp_attempts', 'updated_at'])

        logger.info("Password reset OTP issued for %s", email)
        return user, otp


class VerifyOtpSerializer(serializers.Serializer):
    email = serializers.EmailField()
    otp = serializers.RegexField(r'^\d{6}$', error_messages={'invalid': 'OTP must be 6 digits'})

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        user = User.objects.filter(email=attrs['email']).first()
        if user is None or not self.check_otp(user, attrs['otp']):
            raise serializers.ValidationError({'otp': [INVALID_OTP_MESSAGE]})
        self.user = user
        return attrs

    def check_otp(self, user, otp):
        max_attempts = self.context['ledger_settings'].otp_max_attempts
        if not user.reset_otp or user.reset_otp_expires_at is None:
            return False
        if user.reset_otp_expires_at < timezone.now() or user.reset_otp_attempts >= max_attempts:
            return False
        if check_password(otp, user.reset_otp):
            return True

        user.reset_otp_attempts += 1
        if user.reset_otp_attempts >= max_attempts:
            logger.warning("Too many wrong OTP attempts for %s, code invalidated", user.email)
            user.clear_reset_otp()
        user.save(update_fields=['reset_otp', 'reset_otp_expires_at', 'reset_otp_attempts', 'updated_at'])
        return False


class ResetPasswordSerializer(VerifyOtpSerializer):
    password = serializers.CharField(min_length=6, write_only=True, trim_whitespace=False,
                                     error_messages={'min_length': 'Password must be at least 6 characters'})

    def save(self):
        user = self.user
        user.set_password(self.validated_data['password'])
        user.clear_reset_otp()
        user.save()
        logger.info("Password reset completed for %s", user.email)
        return user
