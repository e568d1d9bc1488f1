"""
Shared Supabase client for the storage, persistence and identity backends.
"""

from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from mediscan.config import settings
from mediscan.utils.logger import get_logger

logger = get_logger("supabase_client")


@lru_cache
def get_supabase_client() -> Client:
    """Create the Supabase client once per process."""
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase backend")

    logger.info("Creating Supabase client", url=settings.supabase_url)
    return create_client(settings.supabase_url, settings.supabase_key)


def resolve_user_id(access_token: str, client: Optional[Client] = None) -> Optional[str]:
    """
    Resolve a Supabase access token to the user's id.

    Returns None for an invalid or expired token.
    """
    client = client or get_supabase_client()
    try:
        response = client.auth.get_user(access_token)
    except Exception as e:
        logger.info("Access token rejected", reason=str(e))
        return None

    user = getattr(response, "user", None)
    return str(user.id) if user is not None else None
