from functools import lru_cache

from supabase import AsyncClient, Client, acreate_client, create_client

from directchat.core import config


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Shared service-role client, created on first use."""
    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)


async def create_realtime_client() -> AsyncClient:
    """Async client for the realtime feed; the sync client cannot subscribe."""
    return await acreate_client(config.SUPABASE_URL, config.SUPABASE_KEY)
