# ledger/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import LendingRecord, User


@admin.register(User)
class LedgerUserAdmin(UserAdmin):
    list_display = ['username', 'email', 'phone', 'status', 'is_admin', 'created_at']
    list_filter = ['status', 'is_admin']
    search_fields = ['username', 'email', 'phone']
    ordering = ['-created_at']
    fieldsets = UserAdmin.fieldsets + (
        ('Ledger', {'fields': ('phone', 'status', 'is_admin')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Ledger', {'fields': ('email', 'phone', 'status', 'is_admin')}),
    )


@admin.register(LendingRecord)
class LendingRecordAdmin(admin.ModelAdmin):
    list_display = ['name', 'amount', 'rate_of_interest', 'start_date', 'renewal_date', 'interest', 'total', 'status']
    list_filter = ['status']
    search_fields = ['name']
    readonly_fields = ['interest', 'total', 'created_by', 'created_at', 'updated_at']
