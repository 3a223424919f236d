"""
Background tasks for invoices module
"""
from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.invoices.status_service import build_status_service
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def update_invoice_statuses(self):
    """
    Periodic task (Celery beat) that recomputes DUE_SOON / OVERDUE statuses
    """
    db = SessionLocal()
    try:
        result = build_status_service(db).run_automated_status_update()
        return result.model_dump(mode="json")

    except Exception as e:
        logger.error(f"Automated invoice status update failed: {str(e)}")
        raise
    finally:
        db.close()
