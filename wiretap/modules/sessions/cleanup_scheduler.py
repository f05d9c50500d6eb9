import asyncio
import logging
from wiretap.modules.sessions.service import SessionBroker

logger = logging.getLogger(__name__)


async def session_cleanup_loop(broker: SessionBroker, interval_seconds: int):
    """Background task that purges expired console sessions"""
    while True:
        try:
            broker.cleanup_expired_sessions()
        except Exception as e:
            logger.error(f"Error in session cleanup loop: {str(e)}")
        await asyncio.sleep(interval_seconds)
