from supabase import create_client, Client, ClientOptions
from app import config
import logging

logger = logging.getLogger(__name__)


def _options() -> ClientOptions:
    # Server side: never persist or refresh a session between requests
    return ClientOptions(
        postgrest_client_timeout=config.SUPABASE_TIMEOUT_SECONDS,
        auto_refresh_token=False,
        persist_session=False,
    )


def get_client() -> Client:
    """Client using the anon key; requests run under the caller's RLS policies once a token is bound."""
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        logger.error("Supabase URL or Key not found in environment variables")
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY, options=_options())


def get_admin_client() -> Client:
    """Service-role client for auth admin calls (invites, account creation)."""
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
        logger.error("Supabase service role key not found in environment variables")
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY, options=_options())
