"""Celery app for background and scheduled crawl jobs.

Start a worker and the scheduler with:

    celery -A lawkita.worker worker -Q crawl
    celery -A lawkita.worker beat
"""

from celery import Celery
from celery.schedules import crontab

from .config import get_settings

settings = get_settings()

CRAWL_QUEUE = "crawl"
CRAWL_TASK = "lawkita.cases.jobs.run_crawl_job_task"

app = Celery(
    "lawkita",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Kuala_Lumpur",
    enable_utc=True,
    # Ack after the crawl finishes so a lost worker requeues it
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=55 * 60,
    task_time_limit=60 * 60,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
    task_routes={"lawkita.cases.jobs.*": {"queue": CRAWL_QUEUE}},
)

# Daily news crawl at 06:00 Malaysia time
app.conf.beat_schedule = {
    "crawl-news-daily": {
        "task": CRAWL_TASK,
        "schedule": crontab(hour=6, minute=0),
        "kwargs": {"source": "news", "enabled": settings.enable_daily_news_crawl},
        "options": {"queue": CRAWL_QUEUE},
    },
}

app.autodiscover_tasks(["lawkita.cases.jobs"], related_name=None, force=True)
