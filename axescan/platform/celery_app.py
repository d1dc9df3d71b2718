from celery import Celery
from kombu import Queue

from axescan.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - scan.execution: one task per scan (browser -> navigation -> axe-core -> score)

    Each task owns its own browser, so worker concurrency is the number of
    Chrome instances that may run at once on a node.
    """
    celery_app = Celery(
        "axescan",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
        task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

        result_expires=3600,

        task_routes={
            "axescan.features.scan.workers.tasks.execute_scan": {"queue": "scan.execution"},
        },

        task_queues=(
            Queue("default"),
            Queue("scan.execution"),
        ),

        task_default_queue="default",

        worker_prefetch_multiplier=1,  # Fair distribution; scans are long

        # A scan is never retried; a redelivered task finds a terminal record and exits
        task_acks_late=True,
        task_reject_on_worker_lost=True,
    )

    celery_app.autodiscover_tasks(["axescan.features.scan.workers"])

    return celery_app


celery_app = create_celery_app()
