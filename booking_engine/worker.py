"""
Celery worker that delivers appointment notifications
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from booking_engine.config.celery_config import celery_app
from booking_engine.config.settings import get_settings
from booking_engine.utils.my_logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@worker_ready.connect
def log_delivery_target(sender=None, **kwargs):
    settings = get_settings()
    tasks = sorted(name for name in celery_app.tasks if not name.startswith("celery."))
    logger.info(f"Notification worker ready with tasks {tasks}")
    if settings.NOTIFICATION_WEBHOOK_URL:
        logger.info(f"Delivering booking events to {settings.NOTIFICATION_WEBHOOK_URL}")
    else:
        logger.warning("NOTIFICATION_WEBHOOK_URL is empty, queued events will be skipped")


@worker_shutdown.connect
def log_shutdown(sender=None, **kwargs):
    logger.info("Notification worker shutting down")


if __name__ == "__main__":
    celery_app.start([
        "worker",
        "--loglevel=info",
        "--queues=notifications",
        "--concurrency=4",
    ])
