"""
Engine configuration: settings, logging and the Celery app.
"""

# Make sure the app is always imported so that shared_task uses it.
from .celery import app as celery_app

__all__ = ('celery_app',)
