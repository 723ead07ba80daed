"""Celery application configuration for background mailbox syncs."""

import os

from celery import Celery
from dotenv import load_dotenv

# Load environment variables from .env file (Docker env vars take precedence)
load_dotenv(override=False)

# Initialize Celery; tasks are registered via @celery_app.task in the included modules
celery_app = Celery(
    "booking_sync_tasks",
    broker=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
    backend=os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0"),
    include=["tasks.sync_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes hard limit (full sync of a busy mailbox)
    task_soft_time_limit=1740,  # 29 minutes soft limit (sends warning)
    result_expires=3600,  # Keep results for 1 hour
)
