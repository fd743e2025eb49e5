# lending_ledger/urls.py
from django.contrib import admin
from django.urls import path, include

from ledger.views import HealthCheckView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health', HealthCheckView.as_view(), name='health'),
    path('api/', include('ledger.urls')),
]
