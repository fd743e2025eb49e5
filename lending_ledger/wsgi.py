# lending_ledger/wsgi.py
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lending_ledger.settings')

application = get_wsgi_application()
