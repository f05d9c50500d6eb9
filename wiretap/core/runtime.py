"""
Process-wide state of the instance lifecycle core.

One CoreRuntime is built at application startup and closed at shutdown. It owns the shared
HTTP client, the Keystone token cache, the lockout timer registry and the background loops.
It hangs off app.state; request handlers reach it through get_runtime().
"""
import asyncio
import logging
from typing import List, Optional

import httpx
from fastapi import Request
from supabase import Client

from wiretap.config.settings import Settings, settings as default_settings
from wiretap.modules.instances.reconciler import InstanceReconciler
from wiretap.modules.instances.sync_scheduler import sync_scheduler_loop
from wiretap.modules.openstack.auth_cache import ProviderAuthCache
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.sessions.cleanup_scheduler import session_cleanup_loop
from wiretap.modules.sessions.service import SessionBroker
from wiretap.modules.workshops.lockout_scheduler import LockoutScheduler

logger = logging.getLogger(__name__)


class CoreRuntime:
    def __init__(
        self,
        supabase: Client,
        app_settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.supabase = supabase
        self.settings = app_settings or default_settings
        self.http = http or httpx.AsyncClient(timeout=self.settings.openstack_timeout_seconds)
        self.auth_cache = ProviderAuthCache(self.http, self.settings)
        self.cloud = CloudClient(self.http, self.auth_cache, self.settings)
        self.lockout = LockoutScheduler(supabase, self.settings)
        self._tasks: List[asyncio.Task] = []

    def reconciler(self, supabase: Optional[Client] = None) -> InstanceReconciler:
        return InstanceReconciler(supabase or self.supabase, self.cloud, self.settings)

    def session_broker(self, supabase: Optional[Client] = None) -> SessionBroker:
        return SessionBroker(supabase or self.supabase, self.cloud, self.settings)

    async def start(self) -> None:
        """Arm lockout timers and start the periodic sweeps."""
        armed = self.lockout.initialize()
        logger.info(f"Lockout scheduler armed for {armed} workshop(s)")

        if self.settings.sync_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(
                sync_scheduler_loop(self.reconciler(), self.settings.sync_interval_seconds)
            ))
            logger.info(f"Instance sync started - every {self.settings.sync_interval_seconds}s")
        if self.settings.session_cleanup_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(
                session_cleanup_loop(self.session_broker(), self.settings.session_cleanup_interval_seconds)
            ))
            logger.info(f"Session cleanup started - every {self.settings.session_cleanup_interval_seconds}s")

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self.lockout.shutdown()
        await self.http.aclose()


def get_runtime(request: Request) -> CoreRuntime:
    """FastAPI dependency: the runtime attached to the app at startup."""
    return request.app.state.runtime
