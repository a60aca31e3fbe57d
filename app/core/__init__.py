from app.core.ai import AIClient, AIResponseError, extract_json_array
from app.core.config import settings
from app.core.deps import get_ai_client, get_current_user, get_supabase
from app.core.security import create_access_token, decode_access_token

__all__ = [
    # Config
    "settings",

    # Security
    "create_access_token", "decode_access_token",

    # Dependencies
    "get_current_user", "get_supabase", "get_ai_client",

    # AI
    "AIClient", "AIResponseError", "extract_json_array",
]
