# app/tasks.py

"""
celery -A app.tasks worker --loglevel=info -P prefork -c 4
celery -A app.tasks.celery_app flower --port=5555
"""

import logging
from typing import Dict

import sentry_sdk
from botocore.exceptions import BotoCoreError, ClientError
from celery import Celery
from sentry_sdk.integrations.celery import CeleryIntegration

from app.config import settings

logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, integrations=[CeleryIntegration()])

celery_app = Celery(
    "tasks",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_soft_time_limit=60,
    task_time_limit=120,
    task_default_queue="media",
    task_acks_late=True,
)


@celery_app.task(name="tasks.delete_remote_media", bind=True, max_retries=3)
def delete_remote_media(self, key: str) -> Dict[str, str]:
    """Delete an uploaded object that is no longer referenced."""
    from app.media import get_media_service

    try:
        get_media_service().delete(key)
    except (BotoCoreError, ClientError) as exc:
        raise self.retry(exc=exc, countdown=10)
    logger.info("Deleted remote media %s", key)
    return {"key": key, "status": "deleted"}
