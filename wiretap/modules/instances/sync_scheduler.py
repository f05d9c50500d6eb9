import asyncio
import logging
from wiretap.modules.instances.reconciler import InstanceReconciler

logger = logging.getLogger(__name__)


async def sync_instances(reconciler: InstanceReconciler):
    """One sweep over every enabled provider and workshop."""
    try:
        result = await reconciler.sync_all()
        if result.error_count:
            logger.warning(f"Instance sweep finished with {result.error_count} error(s)")
    except Exception as e:
        logger.error(f"Error in instance sync sweep: {str(e)}")


async def sync_scheduler_loop(reconciler: InstanceReconciler, interval_seconds: int):
    """Background task that refreshes instance status from OpenStack, first run immediately"""
    while True:
        await sync_instances(reconciler)
        await asyncio.sleep(interval_seconds)
