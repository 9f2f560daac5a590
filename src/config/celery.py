"""
Celery configuration for the laundry operations backend.

DJANGO_SETTINGS_MODULE is set before the app is created so Celery reads
the Django settings (``CELERY_`` prefix), including the beat schedule that
drives the outbox relay.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("laundry")

# Django settings with the CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# tasks.py in every installed app
app.autodiscover_tasks()
