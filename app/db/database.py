from supabase import create_client, Client
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

_supabase: Client | None = None


def get_supabase() -> Client:
    """
    Returns Supabase client instance.
    Used as a dependency in FastAPI routes to access the database.

    The client is created on first use so that importing the app does not
    require Supabase credentials (tests override this dependency).

    Returns:
        Client: Initialized Supabase client
    """
    global _supabase
    if _supabase is None:
        try:
            _supabase = create_client(
                str(settings.SUPABASE_URL),
                str(settings.SUPABASE_KEY)
            )
            logger.info("Supabase client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Supabase client: {str(e)}")
            raise
    return _supabase
