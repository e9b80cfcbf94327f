# storefront/celery_worker.py
from celery import Celery
from celery.schedules import crontab

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "storefront.tasks.abandonment",
    "storefront.services.notification_service",
)

# Jeden beat na caly system - dwa beaty = zdublowane maile o porzuconych koszykach
celery_app.conf.beat_schedule = {
    "sweep-abandoned-carts-every-minute": {
        "task": "storefront.tasks.abandonment.sweep_abandoned_carts_task",
        "schedule": 60.0,  # co 60 sekund
    },
    "purge-abandoned-carts-daily": {
        "task": "storefront.tasks.abandonment.purge_abandoned_carts_task",
        "schedule": crontab(hour=0, minute=0),
    },
}

celery_app.conf.timezone = "UTC"
