from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from . import models, security
from .db import get_session
from .models import User
from .permissions import ROLE_PERMISSIONS, Permissions, PermissionService
from .security import PermissionChecker

router = APIRouter()


def to_user_read(user: User) -> models.UserReadWithPermissions:
    user_dict = user.model_dump(exclude={"hashed_password", "token_version"})
    user_dict["permissions"] = sorted(PermissionService.get_user_permissions(user))
    return models.UserReadWithPermissions(**user_dict)


@router.get("/users", response_model=list[models.UserReadWithPermissions])
def list_users(
    current_user: Annotated[User, Depends(PermissionChecker(Permissions.USERS_READ))],
    session: Session = Depends(get_session),
):
    """List all login accounts."""
    users = session.exec(select(User).order_by(User.username)).all()
    return [to_user_read(user) for user in users]


@router.put("/users/{user_id}", response_model=models.UserReadWithPermissions)
def update_user(
    user_id: int,
    user_update: models.UserUpdate,
    current_user: Annotated[User, Depends(PermissionChecker(Permissions.USERS_MANAGE))],
    session: Session = Depends(get_session),
):
    """Update a user (name, role, password)."""
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user_update.name is not None:
        user.name = user_update.name

    if user_update.role is not None:
        role = user_update.role.strip().lower()
        if role not in ROLE_PERMISSIONS:
            raise HTTPException(status_code=400, detail="Invalid role")
        user.role = role

    if user_update.password:
        user.hashed_password = security.get_password_hash(user_update.password)
        # Existing sessions must log in again with the new password
        user.token_version += 1

    session.add(user)
    session.commit()
    session.refresh(user)
    return to_user_read(user)
