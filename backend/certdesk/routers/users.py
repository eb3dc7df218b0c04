"""Users router — account management for admin and super users."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from certdesk.actor import Actor
from certdesk.database import get_db
from certdesk.middleware.auth import require_roles
from certdesk.schemas.auth import UserCreate, UserListResponse, UserResponse, UserUpdate
from certdesk.services import user_service

router = APIRouter(prefix="/api/users", tags=["users"])

require_manager = require_roles("admin", "super")


@router.get("", response_model=UserListResponse)
def list_users(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_manager),
):
    users = user_service.list_users(db)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=len(users))


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    req: UserCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_manager),
):
    """Create a back-office account. Only super may create super accounts."""
    user = user_service.create_user(
        db,
        actor,
        username=req.username,
        password=req.password,
        role=req.role,
        full_name=req.full_name,
        email=req.email,
    ).unwrap()
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_manager),
):
    return UserResponse.model_validate(user_service.get_user(db, user_id).unwrap())


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    req: UserUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_manager),
):
    """Update the fields that were sent. Deactivated accounts can no longer log in."""
    user = user_service.update_user(db, actor, user_id, req.model_dump(exclude_unset=True)).unwrap()
    return UserResponse.model_validate(user)


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_manager),
):
    """Delete an account; audit entries it authored are kept with no actor."""
    user_service.delete_user(db, actor, user_id).unwrap()
    return {"message": "User deleted successfully", "id": user_id}
