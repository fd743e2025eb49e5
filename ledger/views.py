# ledger/views.py
import logging
import math

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.exceptions import NotFound
from rest_framework.pagination import BasePagination
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .authentication import BearerTokenAuthentication, TokenIssuer
from .config import get_ledger_settings
from .exceptions import SelfDeletionForbidden
from .models import LendingRecord, User
from .serializers import (
    AccrualPreviewSerializer,
    ForgotPasswordSerializer,
    LendingRecordSerializer,
    LendingSummarySerializer,
    LoginSerializer,
    RecordExportSerializer,
    RecordListQuerySerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    UserListQuerySerializer,
    UserSerializer,
    UserWriteSerializer,
    VerifyOtpSerializer,
)
from .tasks import send_password_reset_otp_task

logger = logging.getLogger(__name__)


class LedgerPagination(BasePagination):
    """Offset paging driven by the view's validated list query."""
    results_key = 'records'

    def paginate_queryset(self, queryset, request, view=None):
        params = view.get_list_query().validated_data
        self.page_number = params['page']
        self.limit = params['limit']
        self.count = queryset.count()
        offset = (self.page_number - 1) * self.limit
        return list(queryset[offset:offset + self.limit])

    def get_paginated_response(self, data):
        total_pages = math.ceil(self.count / self.limit)
        return Response({
            self.results_key: data,
            'total': self.count,
            'totalPages': total_pages,
            'currentPage': self.page_number,
            'hasNextPage': self.page_number < total_pages,
            'hasPrevPage': self.page_number > 1,
        })


class UserPagination(LedgerPagination):
    results_key = 'users'


class ListQueryMixin:
    list_query_serializer_class = None

    def get_list_query(self):
        if not hasattr(self, '_list_query'):
            query = self.list_query_serializer_class(data=self.request.query_params)
            query.is_valid(raise_exception=True)
            self._list_query = query
        return self._list_query


# --- Lending records ---

class LendingRecordListCreateView(ListQueryMixin, generics.ListCreateAPIView):
    serializer_class = LendingRecordSerializer
    pagination_class = LedgerPagination
    list_query_serializer_class = RecordListQuerySerializer

    def get_queryset(self):
        queryset = LendingRecord.objects.select_related('created_by')
        if self.request.method == 'GET':
            queryset = self.get_list_query().filter_queryset(queryset)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        logger.info("Lending record %s created by %s", serializer.instance.pk, request.user.username)
        return Response({
            'message': 'Lending record created successfully',
            'record': serializer.data,
        }, status=status.HTTP_201_CREATED)

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


class LendingRecordDetailView(generics.RetrieveUpdateDestroyAPIView):
    queryset = LendingRecord.objects.select_related('created_by')
    serializer_class = LendingRecordSerializer

    def get_object(self):
        record = self.get_queryset().filter(pk=self.kwargs['pk']).first()
        if record is None:
            raise NotFound('Record not found')
        self.check_object_permissions(self.request, record)
        return record

    def put(self, request, *args, **kwargs):
        # Updates only ever touch the fields that were sent
        return self.partial_update(request, *args, **kwargs)

    def update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        response = super().update(request, *args, **kwargs)
        logger.info("Lending record %s updated by %s", kwargs.get('pk'), request.user.username)
        return Response({'message': 'Record updated successfully', 'record': response.data})

    def destroy(self, request, *args, **kwargs):
        record = self.get_object()
        record.delete()
        logger.info("Lending record %s deleted by %s", kwargs.get('pk'), request.user.username)
        return Response({'message': 'Record deleted successfully'}, status=status.HTTP_200_OK)


class LendingSummaryView(APIView):
    def get(self, request, *args, **kwargs):
        summary = LendingRecord.objects.summary(today=timezone.localdate())
        return Response(LendingSummarySerializer(summary).data)


class AccrualPreviewView(generics.GenericAPIView):
    serializer_class = AccrualPreviewSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(serializer.get_accrual(), status=status.HTTP_200_OK)


class LendingRecordExportView(generics.GenericAPIView):
    serializer_class = RecordExportSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        records = serializer.get_records()

        if serializer.validated_data['format'] == 'csv':
            response = HttpResponse(serializer.render_csv(records), content_type='text/csv')
            response['Content-Disposition'] = 'attachment; filename="lending-records.csv"'
            return response

        return Response({
            'message': 'Records retrieved successfully',
            'records': LendingRecordSerializer(records, many=True).data,
        })


# --- Users ---

class UserListCreateView(ListQueryMixin, generics.ListCreateAPIView):
    pagination_class = UserPagination
    list_query_serializer_class = UserListQuerySerializer

    def get_queryset(self):
        queryset = User.objects.all()
        if self.request.method == 'GET':
            queryset = self.get_list_query().filter_queryset(queryset)
        return queryset

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return UserWriteSerializer
        return UserSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        return Response({
            'message': 'User created successfully',
            'user': serializer.data,
        }, status=status.HTTP_201_CREATED)


class UserDetailView(generics.RetrieveUpdateDestroyAPIView):
    queryset = User.objects.all()

    def get_serializer_class(self):
        if self.request.method in ('PUT', 'PATCH'):
            return UserWriteSerializer
        return UserSerializer

    def get_object(self):
        user = self.get_queryset().filter(pk=self.kwargs['pk']).first()
        if user is None:
            raise NotFound('User not found')
        return user

    def put(self, request, *args, **kwargs):
        return self.partial_update(request, *args, **kwargs)

    def update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        response = super().update(request, *args, **kwargs)
        return Response({'message': 'User updated successfully', 'user': response.data})

    def destroy(self, request, *args, **kwargs):
        # Checked before the lookup so admins cannot remove themselves either
        if kwargs['pk'] == request.user.pk:
            raise SelfDeletionForbidden()
        user = self.get_object()
        user.delete()
        logger.info("User %s deleted by %s", kwargs['pk'], request.user.username)
        return Response({'message': 'User deleted successfully'}, status=status.HTTP_200_OK)


# --- Authentication ---

class LedgerSettingsMixin:
    """Hands the process-wide LedgerSettings to the serializers of a view."""
    ledger_settings = None

    def get_ledger_settings(self):
        return self.ledger_settings or get_ledger_settings()

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['ledger_settings'] = self.get_ledger_settings()
        return context


def token_response(user, message, ledger_settings, status_code=status.HTTP_200_OK):
    token = TokenIssuer(ledger_settings).issue(user)
    return Response({
        'message': message,
        'token': token,
        'user': UserSerializer(user).data,
    }, status=status_code)


class RegisterView(LedgerSettingsMixin, generics.CreateAPIView):
    serializer_class = RegisterSerializer
    authentication_classes = []
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("Registered user %s", user.username)
        return token_response(user, 'User registered successfully', self.get_ledger_settings(), status.HTTP_201_CREATED)


class LoginView(LedgerSettingsMixin, generics.GenericAPIView):
    serializer_class = LoginSerializer
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        logger.info("Successful login: %s", serializer.user.email)
        return token_response(serializer.user, 'Login successful', self.get_ledger_settings())


class VerifyTokenView(APIView):
    authentication_classes = [BearerTokenAuthentication]

    def get(self, request, *args, **kwargs):
        return Response({'message': 'Token valid', 'user': UserSerializer(request.user).data})


class ForgotPasswordView(LedgerSettingsMixin, generics.GenericAPIView):
    serializer_class = ForgotPasswordSerializer
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        issued = serializer.issue_otp()
        if issued is not None:
            user, otp = issued
            send_password_reset_otp_task.delay(user.email, otp, user.username)
        # Same answer whether or not the account exists
        return Response({'message': 'If an account exists for this email, an OTP has been sent'})


class VerifyOtpView(LedgerSettingsMixin, generics.GenericAPIView):
    serializer_class = VerifyOtpSerializer
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response({'message': 'OTP verified successfully'})


class ResetPasswordView(LedgerSettingsMixin, generics.GenericAPIView):
    serializer_class = ResetPasswordSerializer
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response({'message': 'Password reset successfully'})


class HealthCheckView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return Response({'status': 'OK', 'message': 'Server is healthy'})
