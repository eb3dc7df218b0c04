"""Auth router — login, logout and current user info."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from certdesk.actor import Actor, OriginInfo
from certdesk.config import Settings, settings as default_settings
from certdesk.database import get_db
from certdesk.middleware.auth import (
    create_access_token,
    get_actor,
    get_current_user,
    get_origin,
    get_settings,
)
from certdesk.middleware.rate_limit import limiter
from certdesk.models.user import User
from certdesk.schemas.auth import LoginRequest, TokenResponse, UserResponse
from certdesk.services.user_service import authenticate

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit(default_settings.LOGIN_RATE_LIMIT)
def login(
    request: Request,
    req: LoginRequest,
    db: Session = Depends(get_db),
    origin: OriginInfo = Depends(get_origin),
    settings: Settings = Depends(get_settings),
):
    """Login and get JWT token."""
    user = authenticate(db, req.username, req.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    token = create_access_token({"sub": user.id, "role": user.role}, settings)
    actor = Actor(id=user.id, role=user.role, username=user.username)
    request.app.state.recorder.record_login(actor, origin, req.method)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/logout")
def logout(
    request: Request,
    actor: Actor = Depends(get_actor),
    origin: OriginInfo = Depends(get_origin),
):
    """Record the logout; the client discards its token."""
    request.app.state.recorder.record_logout(actor, origin)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info."""
    return UserResponse.model_validate(current_user)
