"""
Database Configuration

Supabase client for REST API access (already pooled via PostgREST).

Tables (see supabase/schema.sql):
- challenges: name, date window, share_token, admin_token, is_active
- metrics: scored dimensions of a challenge (points_per_unit, daily_max)
- participants: unique (challenge_id, name)
- logs: unique (participant_id, metric_id, log_date), upserted on conflict

The client is created lazily so the API (and its tests) can start without
Supabase credentials; the first query fails loudly instead.
"""

from typing import Optional

from supabase import create_client, Client
from agora.core.config import settings


_supabase: Optional[Client] = None


def is_supabase_configured() -> bool:
    """Check if Supabase credentials are present."""
    return bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY)


def get_supabase_client() -> Client:
    """
    Get Supabase client instance.

    This uses the REST API which is already connection-pooled via PostgREST.
    """
    global _supabase

    if _supabase is None:
        if not is_supabase_configured():
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment variables"
            )
        _supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)

    return _supabase
