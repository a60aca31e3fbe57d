import urllib.parse
from functools import lru_cache

import jwt
from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.ai import AIClient
from app.core.config import settings
from app.core.security import decode_access_token
from app.db.database import get_supabase
from app.schemas.users import CurrentUser

# HTTP bearer scheme for auth
bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache()
def get_ai_client() -> AIClient:
    """
    Dependency that provides the generative-AI client.

    One AIClient (and its model-handle cache) is shared per process.
    """
    return AIClient(api_key=settings.OPENAI_KEY, cache_size=settings.AI_CLIENT_CACHE_SIZE)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT access token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded JWT payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    access_token: str | None = Cookie(None),
) -> CurrentUser:
    """
    Extracts the user from a bearer token or the access_token cookie.
    Used as a dependency for protected endpoints.

    Raises:
        HTTPException: 401 if token is missing, invalid or has no subject
    """
    token = None

    if credentials:
        token = credentials.credentials
    elif access_token:
        token = access_token
        if '%' in token:
            token = urllib.parse.unquote(token)
        if token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not authenticated")

    payload = verify_jwt_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User ID not found in token")

    return CurrentUser(id=str(user_id))
