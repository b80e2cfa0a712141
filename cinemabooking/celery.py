import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cinemabooking.settings')

app = Celery('cinemabooking')
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks()

app.conf.beat_schedule = {
    'reconcile-seat-counters-hourly': {
        'task': 'bookings.tasks.reconcile_seat_counters',
        'schedule': 3600.0,  # Every hour
    },
}
