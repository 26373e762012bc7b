import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

import auth_schemas
from access import AccessGuard
from dependencies import get_current_user, get_guard, oauth2_scheme
from models import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=auth_schemas.UserInDB, status_code=status.HTTP_201_CREATED)
def register(user: auth_schemas.UserCreate, guard: AccessGuard = Depends(get_guard)):
    """Register a student account. It stays pending until an admin approves it."""
    return guard.register(
        name=user.name,
        email=user.email,
        usn=user.usn,
        phone=user.phone,
        password=user.password,
        confirm_password=user.confirm_password,
    )


@router.post("/login", response_model=auth_schemas.Token)
def login(login_data: auth_schemas.UserLogin, guard: AccessGuard = Depends(get_guard)):
    session = guard.login(login_data.email, login_data.password)
    return {
        "access_token": session.token,
        "token_type": "bearer",
        "user_id": session.user_id,
        "email": login_data.email.lower(),
        "role": session.role,
        "approval_status": session.approval_status,
    }


@router.post("/logout")
def logout(token: Optional[str] = Depends(oauth2_scheme), guard: AccessGuard = Depends(get_guard)):
    guard.logout(token)
    return {"detail": "Logged out"}


@router.get("/me", response_model=auth_schemas.UserInDB)
def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=auth_schemas.UserInDB)
def update_me(
    profile: auth_schemas.ProfileUpdate,
    current_user: User = Depends(get_current_user),
    guard: AccessGuard = Depends(get_guard),
):
    return guard.update_profile(current_user.id, name=profile.name, phone=profile.phone, usn=profile.usn)


@router.post("/change-password")
def change_password(
    payload: auth_schemas.PasswordChange,
    current_user: User = Depends(get_current_user),
    guard: AccessGuard = Depends(get_guard),
):
    guard.change_password(current_user.id, payload.current_password, payload.new_password, payload.confirm_password)
    return {"detail": "Password updated"}


@router.post("/reset-password")
def reset_password(payload: auth_schemas.PasswordReset, guard: AccessGuard = Depends(get_guard)):
    guard.reset_password(payload.email, payload.usn, payload.new_password, payload.confirm_password)
    return {"detail": "Password reset"}
