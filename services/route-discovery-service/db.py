"""Supabase client for route discovery (discovery_sessions, discovery_conversations, discovery_actions)."""

import asyncio
from typing import Optional

from supabase import Client, create_client

from config import settings

_client: Optional[Client] = None


def get_supabase() -> Optional[Client]:
    """Get Supabase client. Returns None if not configured."""
    global _client
    if _client is not None:
        return _client
    if not settings.supabase_configured:
        return None
    _client = create_client(settings.supabase_url, settings.supabase_key)
    return _client


async def check_supabase_connection() -> bool:
    """Lightweight readiness probe."""
    client = get_supabase()
    if not client:
        return False
    try:
        await asyncio.to_thread(
            lambda: client.table("discovery_sessions").select("session_id").limit(1).execute()
        )
        return True
    except Exception:
        return False
