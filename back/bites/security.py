from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlmodel import Session, select

from .db import get_session
from .models import User
from .permissions import PermissionService
from .settings import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/token", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


def create_user_token(user: User) -> str:
    return create_access_token(
        data={"sub": user.username, "role": user.role, "token_version": user.token_version},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )


def read_token(request: Request, bearer: str | None) -> str | None:
    """Token from cookie (primary) or Authorization header (fallback)."""
    return request.cookies.get("access_token") or bearer


async def get_token_from_cookie(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)]
) -> str:
    found = read_token(request, token)
    if found:
        return found

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )


def resolve_user(token: str, session: Session) -> User | None:
    """Decode a token and load its user; None when invalid or revoked."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    username = payload.get("sub")
    if username is None:
        return None

    user = session.exec(select(User).where(User.username == username)).first()
    if user is None or user.token_version != payload.get("token_version", 0):
        return None
    return user


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_cookie)],
    session: Annotated[Session, Depends(get_session)],
) -> User:
    user = resolve_user(token, session)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


class PermissionChecker:
    """Dependency that requires any one of the given permissions."""

    def __init__(self, *required_permissions: str):
        self.required_permissions = [str(getattr(p, "value", p)) for p in required_permissions]

    def __call__(
        self,
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        perms = PermissionService.get_user_permissions(current_user)
        if not any(p in perms for p in self.required_permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized",
            )
        return current_user
