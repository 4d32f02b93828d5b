"""
Bearer token verification and role checks
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from examcore.config import settings
from examcore.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"
AUTHOR_ROLES = (ROLE_TEACHER, ROLE_ADMIN)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: UUID
    role: str
    username: Optional[str] = None

    @property
    def is_author(self) -> bool:
        return self.role in AUTHOR_ROLES


def decode_token(token: str) -> CurrentUser:
    """
    Verify an HS256 token and extract the caller

    Raises:
        Unauthorized: signature, expiry or claim problems
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected token: {str(e)}")
        raise Unauthorized("Invalid token")

    try:
        user_id = UUID(str(payload.get("userId")))
    except ValueError:
        raise Unauthorized("Token is missing a valid userId")

    role = payload.get("role")
    if not role:
        raise Unauthorized("Token is missing a role")

    return CurrentUser(user_id=user_id, role=role, username=payload.get("username"))


def create_token(user_id: UUID, role: str, username: Optional[str] = None, **claims) -> str:
    """Issue a token with the claims this service expects (used by tooling and tests)"""
    payload = {"userId": str(user_id), "role": role, **claims}
    if username:
        payload["username"] = username
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Resolve the bearer token to the calling user"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")

    user = decode_token(credentials.credentials)
    # Lets the rate limiter key on the user instead of the IP
    request.state.user_id = user.user_id
    return user


def require_roles(*roles: str):
    """Dependency factory restricting an endpoint to the given roles"""

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise Forbidden(f"Requires role: {', '.join(roles)}")
        return user

    return checker
