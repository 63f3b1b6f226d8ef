"""
Celery application for background work (notification delivery).

Configuration is read from Django settings under the ``CELERY_``
namespace; tasks are discovered from each installed app's ``tasks``
module.
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campclinic.settings')

app = Celery('campclinic')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
