from supabase import create_client, Client

from garment_synth.config import logger
from garment_synth.config import SUPABASE_SERVICE_KEY, SUPABASE_URL


def supabase_create_client(
    url: str | None = None, key: str | None = None
) -> Client | None:
    """
    Creates and returns a Supabase client using the configured URL and service key.

    Returns:
        Client: Supabase client instance if successful, None otherwise.
    """
    url = url or SUPABASE_URL
    key = key or SUPABASE_SERVICE_KEY
    if not url or not key:
        logger.error("SUPABASE_URL or SUPABASE_SERVICE_KEY is not set")
        return None
    try:
        supabase: Client = create_client(url, key)
        logger.info("Supabase client connected successfully!")
        return supabase
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        return None
