"""
Celery configuration for the BOM engine.
"""

from celery import Celery
from celery.signals import setup_logging

from .logging import configure_logging
from .settings import get_settings

settings = get_settings()

app = Celery('bomcore', include=['bomcore.application.tasks.bom_tasks'])

app.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_always_eager=settings.celery_task_always_eager,
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
)

# Configure task routes
app.conf.task_routes = {
    'bomcore.application.tasks.bom_tasks.*': {'queue': 'bom'},
}


@setup_logging.connect
def config_loggers(*args, **kwargs):
    """Workers log through the engine's LOGGING instead of Celery's defaults."""
    configure_logging(settings)
