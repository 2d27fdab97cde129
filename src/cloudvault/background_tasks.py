import asyncio
import logging

from cloudvault.celery_app import PRUNE_USAGE_TASK, RECONCILE_TASK, celery_app
from cloudvault.dependencies import load_remote_credentials
from cloudvault.remote_storage import RemoteStorageAdapter
from cloudvault.services.api_key_gate import prune_usage
from cloudvault.services.file_lifecycle import LifecycleSettings
from cloudvault.services.reconciliation import Reconciler
from cloudvault.task_utils import task_db_session

logger = logging.getLogger(__name__)


async def run_reconciliation(grace_minutes: int | None = None) -> dict:
    """Resolve stale pending operations with a fresh adapter owned by this run."""
    settings = LifecycleSettings()
    grace = settings.reconcile_grace_minutes if grace_minutes is None else grace_minutes
    with task_db_session() as db:
        storage = RemoteStorageAdapter(load_remote_credentials(db), presign_ttl=settings.presigned_url_ttl)
        try:
            result = await Reconciler(db, storage).sweep(grace_minutes=grace)
        finally:
            await storage.clear_connection()
    return result.to_dict()


@celery_app.task(name=RECONCILE_TASK, bind=True, max_retries=0)
def reconcile_pending_operations_task(self, grace_minutes: int | None = None) -> dict:
    """Periodic sweep over the intent log.

    Operations that hit a remote error stay pending and are retried by the next
    scheduled run rather than by Celery.
    """
    logger.info("Starting reconciliation of pending operations")
    try:
        result = asyncio.run(run_reconciliation(grace_minutes))
    except Exception as e:
        logger.error(f"Reconciliation sweep failed: {e}", exc_info=True)
        raise
    logger.info(f"Reconciliation complete: {result['successful']} resolved, {result['failed']} failed of {result['total']}")
    return result


@celery_app.task(name=PRUNE_USAGE_TASK, max_retries=0)
def prune_api_usage_task() -> dict:
    """Drop API call records older than the rate window."""
    with task_db_session() as db:
        deleted = prune_usage(db)
    logger.info(f"Pruned {deleted} API usage records")
    return {"status": "complete", "deleted": deleted}
