"""
Console session broker.

A session ties (user, instance, console type) to a signed token and an absolute expiry stored
in the sessions table. The row is the source of truth for liveness: verify_token() only checks
the signature and the type discriminator, extend/close/lookup go through the row.
"""
from supabase import Client
from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import Forbidden, InstanceLocked, SessionExpired, SessionNotFound
from wiretap.modules.instances.service import InstanceService
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.openstack.schemas import ConsoleType
from wiretap.modules.sessions.schemas import (
    CreateSessionResponse, ExtendSessionResponse, SessionClaims, SessionResponse, SessionStats
)
from wiretap.modules.workshops.lockout_scheduler import parse_boundary, evaluate_window, utcnow
from datetime import datetime, timedelta
from typing import Callable, List, Optional
import jwt
import logging
import uuid

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "vnc_session"


class SessionBroker:
    def __init__(
        self,
        supabase: Client,
        cloud: Optional[CloudClient] = None,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.supabase = supabase
        self.cloud = cloud
        self.settings = app_settings or default_settings
        self.clock = clock
        self.instances = InstanceService(supabase, cloud)

    def _ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.session_ttl_seconds)

    def _is_expired(self, session: SessionResponse, now: datetime) -> bool:
        return parse_boundary(session.expires_at) <= now

    def mint_token(self, user_id: str, instance_id: str, console_type: ConsoleType, expires_at: datetime) -> str:
        payload = {
            "userId": user_id,
            "instanceId": instance_id,
            "consoleType": console_type.value,
            "type": SESSION_TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
            "exp": expires_at,
        }
        return jwt.encode(payload, self.settings.session_token_secret, algorithm=self.settings.session_token_algorithm)

    def verify_token(self, token: str) -> SessionClaims:
        """Check signature, structure and type. Expiry and presence are the row's business."""
        try:
            decoded = jwt.decode(
                token,
                self.settings.session_token_secret,
                algorithms=[self.settings.session_token_algorithm],
                options={"verify_exp": False},
            )
            claims = SessionClaims(**decoded)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            logger.warning(f"Rejected session token: {e}")
            raise Forbidden("Invalid session token")
        if claims.type != SESSION_TOKEN_TYPE:
            raise Forbidden("Invalid session token type")
        return claims

    async def create_session(
        self,
        user_id: str,
        instance_id: str,
        console_type: ConsoleType = ConsoleType.NOVNC,
        override: bool = False,
    ) -> CreateSessionResponse:
        """Open a console session. Locked instances and locked workshop windows need override."""
        instance, workshop, provider = self.instances.resolve_context(instance_id)
        now = self.clock()
        if not override:
            if instance.locked:
                raise InstanceLocked(f"Instance {instance.name} is locked")
            window = evaluate_window(now, parse_boundary(workshop.lockout_start), parse_boundary(workshop.lockout_end))
            if window.locked:
                raise InstanceLocked(f"Workshop {workshop.name} is outside its access window")

        console_url = await self.cloud.get_console_url(
            provider, instance.openstack_id, console_type, workshop.openstack_project_name
        )

        expires_at = now + self._ttl()
        session_token = self.mint_token(user_id, instance.id, console_type, expires_at)
        self.supabase.table("sessions").insert({
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "instance_id": instance.id,
            "session_token": session_token,
            "console_type": console_type.value,
            "expires_at": expires_at.isoformat(),
        }).execute()
        logger.info(f"Console session ({console_type.value}) opened on instance {instance.id} for user {user_id}")
        return CreateSessionResponse(session_token=session_token, console_url=console_url, expires_at=expires_at)

    def _find(self, session_token: str) -> Optional[SessionResponse]:
        result = self.supabase.table("sessions")\
            .select("*")\
            .eq("session_token", session_token)\
            .limit(1)\
            .execute()
        return SessionResponse(**result.data[0]) if result.data else None

    def _delete(self, session_id: str) -> None:
        self.supabase.table("sessions").delete().eq("id", session_id).execute()

    def get_session(self, session_token: str) -> SessionResponse:
        """Live session for the token; a stale row is deleted on sight."""
        session = self._find(session_token)
        if session is None:
            raise SessionNotFound()
        if self._is_expired(session, self.clock()):
            self._delete(session.id)
            raise SessionExpired()
        return session

    def extend_session(self, session_token: str) -> ExtendSessionResponse:
        session = self.get_session(session_token)
        expires_at = self.clock() + self._ttl()
        self.supabase.table("sessions")\
            .update({"expires_at": expires_at.isoformat()})\
            .eq("id", session.id)\
            .execute()
        return ExtendSessionResponse(session_token=session_token, expires_at=expires_at)

    def close_session(self, session_token: str) -> None:
        session = self._find(session_token)
        if session is None:
            raise SessionNotFound()
        self._delete(session.id)

    def close_all_for_user(self, user_id: str) -> int:
        result = self.supabase.table("sessions").delete().eq("user_id", user_id).execute()
        return len(result.data or [])

    def close_all_for_instance(self, instance_id: str) -> int:
        result = self.supabase.table("sessions").delete().eq("instance_id", instance_id).execute()
        return len(result.data or [])

    def _active(self, query) -> List[SessionResponse]:
        now = self.clock()
        sessions = [SessionResponse(**row) for row in (query.order("created_at").execute().data or [])]
        return [s for s in sessions if not self._is_expired(s, now)]

    def get_user_sessions(self, user_id: str) -> List[SessionResponse]:
        return self._active(self.supabase.table("sessions").select("*").eq("user_id", user_id))

    def get_instance_sessions(self, instance_id: str) -> List[SessionResponse]:
        return self._active(self.supabase.table("sessions").select("*").eq("instance_id", instance_id))

    def get_active_sessions(self) -> List[SessionResponse]:
        return self._active(self.supabase.table("sessions").select("*"))

    def cleanup_expired_sessions(self) -> int:
        """Purge rows whose expiry has passed. Returns the number deleted."""
        result = self.supabase.table("sessions")\
            .delete()\
            .lt("expires_at", self.clock().isoformat())\
            .execute()
        cleaned = len(result.data or [])
        if cleaned:
            logger.info(f"Cleaned up {cleaned} expired console session(s)")
        return cleaned

    def get_session_stats(self) -> SessionStats:
        result = self.supabase.table("sessions").select("*").execute()
        sessions = [SessionResponse(**row) for row in (result.data or [])]
        now = self.clock()
        stats = SessionStats(total=len(sessions), by_console_type={t.value: 0 for t in ConsoleType})
        for session in sessions:
            if self._is_expired(session, now):
                stats.expired += 1
            else:
                stats.active += 1
            stats.by_console_type[session.console_type.value] += 1
        return stats
