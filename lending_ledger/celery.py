# lending_ledger/celery.py
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lending_ledger.settings')

app = Celery('lending_ledger')

# All celery settings live in settings.py under the CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
