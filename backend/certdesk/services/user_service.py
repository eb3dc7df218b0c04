"""Back-office accounts: creation, lookup, updates, deletion and login checks."""

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from certdesk.actor import Actor
from certdesk.errors import Result, duplicate_identifier, forbidden, not_found, validation_error
from certdesk.middleware.auth import hash_password, verify_password
from certdesk.models.user import User
from certdesk.permissions import VALID_ROLES, Role
from certdesk.services.audit_service import detach_actor

logger = logging.getLogger(__name__)

MANAGER_ROLES = (Role.ADMIN.value, Role.SUPER.value)


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        return None
    return user


def list_users(db: Session) -> list[User]:
    return list(db.execute(select(User).order_by(User.created_at.desc(), User.id)).scalars().all())


def create_user(
    db: Session,
    actor: Actor,
    username: str,
    password: str,
    role: str = Role.USER.value,
    full_name: Optional[str] = None,
    email: Optional[str] = None,
) -> Result[User]:
    """Create an account. Only super may create another super."""
    if actor.role not in MANAGER_ROLES:
        return Result.failure(forbidden(
            "Only admin or super users can manage accounts", actor.role, "create_user", MANAGER_ROLES,
        ))
    if role not in VALID_ROLES:
        return Result.failure(validation_error([{"field": "role", "message": f"Invalid role: {role}"}]))
    if role == Role.SUPER.value and actor.role != Role.SUPER.value:
        return Result.failure(forbidden(
            "Only super users can create super accounts", actor.role, "create_user", (Role.SUPER.value,),
        ))

    username = username.strip()
    if not username or not password:
        return Result.failure(validation_error([
            {"field": "username", "message": "Username and password are required"},
        ]))

    conditions = [User.username == username]
    if email:
        conditions.append(User.email == email)
    existing = db.execute(select(User).where(or_(*conditions))).scalars().first()
    if existing:
        field = "username" if existing.username == username else "email"
        return Result.failure(duplicate_identifier([
            {"field": field, "value": username if field == "username" else email,
             "message": f"{field.capitalize()} already registered"},
        ]))

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        full_name=full_name,
        email=email or None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return Result.failure(duplicate_identifier([
            {"field": "username", "value": username, "message": "Username already registered"},
        ]))
    db.refresh(user)
    logger.info("User %s created with role %s by %s", user.username, user.role, actor.id)
    return Result.success(user)


def get_user(db: Session, user_id: str) -> Result[User]:
    user = db.get(User, user_id)
    if user is None:
        return Result.failure(not_found("User", user_id))
    return Result.success(user)


UPDATABLE_FIELDS = ("username", "email", "password", "role", "full_name", "is_active")


def update_user(db: Session, actor: Actor, user_id: str, changes: dict) -> Result[User]:
    """Change an account's details, role, password or active flag.

    Only super may touch a super account or grant the super role, and nobody
    may change their own role or deactivate themselves.
    """
    if actor.role not in MANAGER_ROLES:
        return Result.failure(forbidden(
            "Only admin or super users can manage accounts", actor.role, "update_user", MANAGER_ROLES,
        ))

    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    if not changes:
        return Result.failure(validation_error([{
            "field": "body",
            "message": f"No valid fields to update. Allowed fields: {', '.join(UPDATABLE_FIELDS)}",
        }]))

    user = db.get(User, user_id)
    if user is None:
        return Result.failure(not_found("User", user_id))

    if actor.role != Role.SUPER.value and (
        user.role == Role.SUPER.value or changes.get("role") == Role.SUPER.value
    ):
        return Result.failure(forbidden(
            "Only super users can create or update super accounts", actor.role, "update_user",
            (Role.SUPER.value,),
        ))
    if "role" in changes and changes["role"] not in VALID_ROLES:
        return Result.failure(validation_error([
            {"field": "role", "message": f"Invalid role: {changes['role']}"},
        ]))
    if user.id == actor.id and "role" in changes and changes["role"] != user.role:
        return Result.failure(forbidden(
            "You cannot change your own role", actor.role, "update_user", MANAGER_ROLES,
        ))
    if user.id == actor.id and changes.get("is_active") is False:
        return Result.failure(forbidden(
            "You cannot deactivate your own account", actor.role, "update_user", MANAGER_ROLES,
        ))

    errors = []
    if "username" in changes:
        changes["username"] = (changes["username"] or "").strip()
        if not changes["username"]:
            errors.append({"field": "username", "message": "Username cannot be empty"})
    if "password" in changes and not changes["password"]:
        errors.append({"field": "password", "message": "Password cannot be empty"})
    if "is_active" in changes and changes["is_active"] is None:
        errors.append({"field": "is_active", "message": "is_active must be true or false"})
    if errors:
        return Result.failure(validation_error(errors))

    conflicts = []
    for field in ("username", "email"):
        value = changes.get(field)
        if not value:
            continue
        taken = db.execute(
            select(User.id).where(getattr(User, field) == value, User.id != user.id)
        ).first()
        if taken:
            conflicts.append({
                "field": field, "value": value, "message": f"{field.capitalize()} already registered",
            })
    if conflicts:
        return Result.failure(duplicate_identifier(conflicts))

    if "password" in changes:
        user.password_hash = hash_password(changes.pop("password"))
    if "email" in changes:
        changes["email"] = changes["email"] or None
    for key, value in changes.items():
        setattr(user, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return Result.failure(duplicate_identifier([
            {"field": "username", "value": changes.get("username"),
             "message": "Username or email already registered"},
        ]))
    db.refresh(user)
    logger.info("User %s updated by %s (%s)", user.id, actor.id, ", ".join(sorted(changes)) or "password")
    return Result.success(user)


def delete_user(db: Session, actor: Actor, user_id: str) -> Result[None]:
    """Remove an account; its audit and history rows keep existing with no actor."""
    if actor.role not in MANAGER_ROLES:
        return Result.failure(forbidden(
            "Only admin or super users can manage accounts", actor.role, "delete_user", MANAGER_ROLES,
        ))
    if user_id == actor.id:
        return Result.failure(forbidden(
            "You cannot delete your own account", actor.role, "delete_user", MANAGER_ROLES,
        ))

    user = db.get(User, user_id)
    if user is None:
        return Result.failure(not_found("User", user_id))
    if user.role == Role.SUPER.value and actor.role != Role.SUPER.value:
        return Result.failure(forbidden(
            "Only super users can delete super accounts", actor.role, "delete_user", (Role.SUPER.value,),
        ))

    detach_actor(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("User %s deleted by %s", user_id, actor.id)
    return Result.success()


def ensure_super_user(session_factory: sessionmaker, username: str, password: str) -> Optional[User]:
    """Create the bootstrap super account if it does not exist yet."""
    if not username or not password:
        return None
    db = session_factory()
    try:
        user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if user is None:
            user = User(
                username=username,
                password_hash=hash_password(password),
                role=Role.SUPER.value,
                full_name="Super Administrator",
            )
            db.add(user)
            db.commit()
            logger.info("Bootstrap super user %s created", username)
        return user
    finally:
        db.close()
