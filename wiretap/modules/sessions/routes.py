from fastapi import APIRouter, Depends
from wiretap.core.dependencies import get_current_user_id, is_super_user, require_super_user
from wiretap.core.errors import Forbidden
from wiretap.core.runtime import CoreRuntime, get_runtime
from wiretap.database.supabase_client import get_supabase
from wiretap.modules.instances.routes import check_instance_access
from wiretap.modules.instances.service import InstanceService
from wiretap.modules.sessions.schemas import (
    SessionCreate, SessionResponse, CreateSessionResponse, ExtendSessionResponse, SessionStats
)
from wiretap.modules.sessions.service import SessionBroker
from supabase import Client
from typing import Dict, List, Optional

router = APIRouter(prefix="/console", tags=["console"])


def get_session_broker(
    supabase: Client = Depends(get_supabase),
    runtime: CoreRuntime = Depends(get_runtime),
) -> SessionBroker:
    return runtime.session_broker(supabase)


def check_session_owner(session: SessionResponse, user_data: Dict) -> None:
    if not is_super_user(user_data) and session.user_id != user_data["id"]:
        raise Forbidden("Session belongs to another user")


@router.post("/instances/{instance_id}", response_model=CreateSessionResponse, status_code=201)
async def create_console_session(
    instance_id: str,
    session_data: Optional[SessionCreate] = None,
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker),
    supabase: Client = Depends(get_supabase)
):
    """Open a console on an instance. Locked instances need super user."""
    check_instance_access(InstanceService(supabase).get_instance(instance_id), user_data)
    session_data = session_data or SessionCreate()
    return await broker.create_session(
        user_data["id"],
        instance_id,
        session_data.console_type,
        override=is_super_user(user_data),
    )


@router.get("/sessions", response_model=List[SessionResponse])
async def list_my_sessions(
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker)
):
    return broker.get_user_sessions(user_data["id"])


@router.delete("/sessions", status_code=200)
async def close_my_sessions(
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker)
):
    closed = broker.close_all_for_user(user_data["id"])
    return {"message": f"Closed {closed} session(s)", "closed": closed}


@router.get("/sessions/active", response_model=List[SessionResponse])
async def list_active_sessions(
    user_data: Dict = Depends(require_super_user),
    broker: SessionBroker = Depends(get_session_broker)
):
    return broker.get_active_sessions()


@router.get("/sessions/stats", response_model=SessionStats)
async def get_session_stats(
    user_data: Dict = Depends(require_super_user),
    broker: SessionBroker = Depends(get_session_broker)
):
    return broker.get_session_stats()


@router.post("/sessions/cleanup", status_code=200)
async def cleanup_sessions(
    user_data: Dict = Depends(require_super_user),
    broker: SessionBroker = Depends(get_session_broker)
):
    cleaned = broker.cleanup_expired_sessions()
    return {"message": f"Cleaned up {cleaned} expired session(s)", "cleaned": cleaned}


@router.get("/instances/{instance_id}/sessions", response_model=List[SessionResponse])
async def list_instance_sessions(
    instance_id: str,
    user_data: Dict = Depends(require_super_user),
    broker: SessionBroker = Depends(get_session_broker)
):
    return broker.get_instance_sessions(instance_id)


@router.delete("/instances/{instance_id}/sessions", status_code=200)
async def close_instance_sessions(
    instance_id: str,
    user_data: Dict = Depends(require_super_user),
    broker: SessionBroker = Depends(get_session_broker)
):
    closed = broker.close_all_for_instance(instance_id)
    return {"message": f"Closed {closed} session(s)", "closed": closed}


@router.get("/sessions/{session_token}", response_model=SessionResponse)
async def get_console_session(
    session_token: str,
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker)
):
    broker.verify_token(session_token)
    session = broker.get_session(session_token)
    check_session_owner(session, user_data)
    return session


@router.post("/sessions/{session_token}/extend", response_model=ExtendSessionResponse)
async def extend_console_session(
    session_token: str,
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker)
):
    claims = broker.verify_token(session_token)
    if not is_super_user(user_data) and claims.userId != user_data["id"]:
        raise Forbidden("Session belongs to another user")
    return broker.extend_session(session_token)


@router.delete("/sessions/{session_token}", status_code=200)
async def close_console_session(
    session_token: str,
    user_data: Dict = Depends(get_current_user_id),
    broker: SessionBroker = Depends(get_session_broker)
):
    claims = broker.verify_token(session_token)
    if not is_super_user(user_data) and claims.userId != user_data["id"]:
        raise Forbidden("Session belongs to another user")
    broker.close_session(session_token)
    return {"message": "Session closed successfully"}
