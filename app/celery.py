from celery import Celery

# Create Celery app
celery = Celery("entity_renewal")

# Load configuration from app.config.celeryconfig module
celery.config_from_object("app.config.celeryconfig")
