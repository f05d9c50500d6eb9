import logging

from supabase import create_client, Client
from wiretap.config.settings import settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Process-wide Supabase clients.

    Requests use the anon client and act under the caller's row-level security.
    The lockout timers and the periodic sweeps have no caller, so they use the service-role client.
    """
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Falls back to the anon client when no key is set."""
        if cls._service_client is None:
            if not settings.supabase_service_role_key:
                logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; background work uses the anon client")
                return cls.get_client()
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client


def get_supabase() -> Client:
    return SupabaseClient.get_client()
