"""
Bearer token authentication dependencies
Centralized auth logic for all routes
"""
from fastapi import HTTPException, Request
import jwt
import logging

from core.auth.jwt_handler import decode_token
from models.discussion_model import CurrentUser, ROLE_USER

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="No authorization header provided")

    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Token format should be: Bearer [token]")
    return parts[1].strip()


def get_current_user(request: Request) -> CurrentUser:
    """
    Verify the HS256 bearer token and return the caller's identity.
    The token carries `userId` and `role`; `role` defaults to 'user'.
    """
    token = extract_bearer_token(request)

    try:
        decoded = decode_token(token)
    except jwt.ExpiredSignatureError:
        logger.info("❌ Token expired")
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.PyJWTError as e:
        logger.warning(f"❌ Token verification failed: {e} (token {token[:10]}...)")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = decoded.get("userId")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=401, detail="Token has no userId")

    role = decoded.get("role") or ROLE_USER
    return CurrentUser(id=user_id, role=str(role))
