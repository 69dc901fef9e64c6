from celery import Celery
from prestasync.config.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "prestasync_dashboard",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["prestasync.tasks.sync_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    result_expires=3600,
    task_ignore_result=False,
    task_store_errors_even_if_ignored=True,
)

# Pull every connected store on a fixed interval
celery_app.conf.beat_schedule = {
    "sync-connected-sites": {
        "task": "prestasync.tasks.sync_tasks.sync_all_sites_task",
        "schedule": settings.SYNC_SCHEDULE_MINUTES * 60.0,
    },
}

if __name__ == "__main__":
    celery_app.start()
