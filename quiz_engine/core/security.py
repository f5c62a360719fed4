"""
quiz_engine/core/security.py
JWT handling for principal resolution

Users authenticate with the surrounding LMS; this service only verifies
the bearer token and reads the principal (sub + role) from it.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from quiz_engine.core.config import settings
from quiz_engine.utils.exceptions import UnauthorizedException

ROLE_INSTRUCTOR = "instructor"
ROLE_STUDENT = "student"
ROLES = (ROLE_INSTRUCTOR, ROLE_STUDENT)


class SecurityManager:
    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT token"""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
        encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return encoded_jwt

    @staticmethod
    def decode_token(token: str) -> dict:
        """Decode and validate JWT token"""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedException("Token expired")
        except jwt.InvalidTokenError:
            raise UnauthorizedException("Invalid token")

        user_id = payload.get("sub")
        role = payload.get("role")
        if user_id is None or role not in ROLES:
            raise UnauthorizedException("Invalid token payload")
        return {"user_id": str(user_id), "role": role}
