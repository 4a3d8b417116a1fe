import jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import os

from dotenv import load_dotenv

load_dotenv()

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 1
# ✅ CLOCK SKEW TOLERANCE (in seconds)
JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "120"))


def create_access_token(user_id: str, role: str = "user", expires_in: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_in or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    payload = {
        "userId": user_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Raises jwt.PyJWTError (ExpiredSignatureError, InvalidTokenError...) on a bad token"""
    return jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[ALGORITHM],
        leeway=JWT_LEEWAY_SECONDS,
        options={"require": ["exp"]},
    )
