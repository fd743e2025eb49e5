# ledger/models.py
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Count, Q, Sum

from .accrual import accrue
from .exceptions import AccrualBypassError

MAX_AMOUNT = Decimal('10000000')  # 1 crore
ACCRUAL_INPUT_FIELDS = ('amount', 'rate_of_interest', 'start_date', 'renewal_date')
DERIVED_FIELDS = ('interest', 'total')

# (summary key, days ahead of today)
INTEREST_WINDOWS = (
    ('interest_next_1_month', 30),
    ('interest_next_6_months', 180),
    ('interest_next_1_year', 365),
)

phone_validator = RegexValidator(
    regex=r'^[6-9]\d{9}$',
    message='Please provide a valid 10-digit phone number',
)


class User(AbstractUser):
    STATUS_ACTIVE = 'Active'
    STATUS_INACTIVE = 'Inactive'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = models.CharField(max_length=30, unique=True)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=10, unique=True, validators=[phone_validator])
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    is_admin = models.BooleanField(default=False)

    # Password reset one-time code, stored hashed
    reset_otp = models.CharField(max_length=128, blank=True, default='')
    reset_otp_expires_at = models.DateTimeField(null=True, blank=True)
    reset_otp_attempts = models.PositiveSmallIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    REQUIRED_FIELDS = ['email', 'phone']

    class Meta:
        ordering = ['-created_at']

    @property
    def has_active_status(self):
        return self.status == self.STATUS_ACTIVE

    def clear_reset_otp(self):
        self.reset_otp = ''
        self.reset_otp_expires_at = None
        self.reset_otp_attempts = 0

    def __str__(self):
        return f"{self.username} <{self.email}>"


class LendingRecordQuerySet(models.QuerySet):
    """Every write path here keeps interest/total in step with their inputs."""

    def update(self, **kwargs):
        touched = sorted(set(kwargs) & set(ACCRUAL_INPUT_FIELDS + DERIVED_FIELDS))
        if touched:
            raise AccrualBypassError(
                f"Cannot bulk update {', '.join(touched)}; save each record so interest is recomputed"
            )
        return super().update(**kwargs)

    def bulk_create(self, objs, *args, **kwargs):
        objs = list(objs)
        for obj in objs:
            obj.apply_accrual()
        return super().bulk_create(objs, *args, **kwargs)

    def bulk_update(self, objs, fields, *args, **kwargs):
        fields = list(fields)
        if set(fields) & set(ACCRUAL_INPUT_FIELDS + DERIVED_FIELDS):
            objs = list(objs)
            for obj in objs:
                obj.apply_accrual()
            fields += [name for name in DERIVED_FIELDS if name not in fields]
            # Django writes bulk_update through update(), which refuses these fields here
            plain = models.QuerySet(model=self.model, using=self._db)
            return plain.bulk_update(objs, fields, *args, **kwargs)
        return super().bulk_update(objs, fields, *args, **kwargs)

    def search(self, term):
        if not term:
            return self
        return self.filter(name__icontains=term)

    def outstanding(self):
        return self.exclude(status=LendingRecord.STATUS_COMPLETED)

    def summary(self, today):
        """Dashboard totals, read from the persisted interest of each record."""
        aggregates = {
            'total_amount_lended': Sum('amount'),
            'total_interest_expected': Sum('interest'),
        }
        for key, days in INTEREST_WINDOWS:
            window = (today, today + timedelta(days=days))
            aggregates[key] = Sum('interest', filter=Q(renewal_date__range=window))

        totals = self.outstanding().aggregate(**aggregates)
        result = {key: value if value is not None else Decimal('0') for key, value in totals.items()}

        status_counts = dict(self.order_by().values_list('status').annotate(count=Count('id')))
        result['active_records'] = status_counts.get(LendingRecord.STATUS_ACTIVE, 0)
        result['completed_records'] = status_counts.get(LendingRecord.STATUS_COMPLETED, 0)
        result['overdue_records'] = status_counts.get(LendingRecord.STATUS_OVERDUE, 0)
        result['total_records'] = sum(status_counts.values())
        return result


class LendingRecord(models.Model):
    STATUS_ACTIVE = 'Active'
    STATUS_COMPLETED = 'Completed'
    STATUS_OVERDUE = 'Overdue'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_OVERDUE, 'Overdue'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01')), MaxValueValidator(MAX_AMOUNT)],
    )
    rate_of_interest = models.DecimalField(
        max_digits=5, decimal_places=2,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
    )  # annual, in percent
    start_date = models.DateField()
    renewal_date = models.DateField()
    interest = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'), editable=False)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'), editable=False)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    notes = models.TextField(max_length=500, blank=True, default='')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        editable=False,
        related_name='lending_records',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = LendingRecordQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'renewal_date'], name='lending_status_renewal_idx'),
            models.Index(fields=['start_date'], name='lending_start_date_idx'),
        ]

    def apply_accrual(self):
        accrual = accrue(self.amount, self.rate_of_interest, self.start_date, self.renewal_date)
        self.interest = accrual.interest
        self.total = accrual.total
        return accrual

    def save(self, *args, **kwargs):
        # Never persist a record whose interest was computed from other inputs
        self.apply_accrual()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | set(DERIVED_FIELDS)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name}: {self.amount} @ {self.rate_of_interest}% ({self.status})"
