# ledger/management/commands/ingest_records.py
from django.core.management.base import BaseCommand, CommandError

from ledger.models import User
from ledger.tasks import ingest_records_task


class Command(BaseCommand):
    help = 'Ingests lending records from a CSV file using a background worker.'

    def add_arguments(self, parser):
        parser.add_argument('file_path', help='CSV with the same columns as the lending records export')
        parser.add_argument('--created-by', required=True, help='Email of the user the records are attributed to')

    def handle(self, *args, **options):
        email = options['created_by'].strip().lower()
        user = User.objects.filter(email=email).first()
        if user is None:
            raise CommandError(f"No user with email {email}")

        self.stdout.write(self.style.SUCCESS('Starting lending record ingestion...'))

        ingest_records_task.delay(options['file_path'], str(user.pk))

        self.stdout.write(self.style.SUCCESS('Ingestion task dispatched to Celery worker.'))
        self.stdout.write(self.style.SUCCESS('Check Celery worker logs for ingestion status.'))
