# ledger/urls.py
from django.urls import path

from .views import (
    AccrualPreviewView,
    ForgotPasswordView,
    LendingRecordDetailView,
    LendingRecordExportView,
    LendingRecordListCreateView,
    LendingSummaryView,
    LoginView,
    RegisterView,
    ResetPasswordView,
    UserDetailView,
    UserListCreateView,
    VerifyOtpView,
    VerifyTokenView,
)

urlpatterns = [
    path('auth/register', RegisterView.as_view(), name='register'),
    path('auth/login', LoginView.as_view(), name='login'),
    path('auth/verify', VerifyTokenView.as_view(), name='verify_token'),
    path('auth/me', VerifyTokenView.as_view(), name='me'),
    path('auth/forgot-password', ForgotPasswordView.as_view(), name='forgot_password'),
    path('auth/verify-otp', VerifyOtpView.as_view(), name='verify_otp'),
    path('auth/reset-password', ResetPasswordView.as_view(), name='reset_password'),

    path('users', UserListCreateView.as_view(), name='user_list'),
    path('users/<uuid:pk>', UserDetailView.as_view(), name='user_detail'),

    path('lending', LendingRecordListCreateView.as_view(), name='lending_list'),
    path('lending/summary', LendingSummaryView.as_view(), name='lending_summary'),
    path('lending/preview', AccrualPreviewView.as_view(), name='lending_preview'),
    path('lending/download', LendingRecordExportView.as_view(), name='lending_download'),
    path('lending/<uuid:pk>', LendingRecordDetailView.as_view(), name='lending_detail'),
]
