"""Background jobs on Celery with a Redis broker."""
