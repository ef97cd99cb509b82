# workflow/users.py

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import func

from extensions import db
from models import CostEstimate, PurchaseOrder, User, utcnow
from permissions import DEFAULT_ROLE, MANAGE_USERS, ROLES, require_capability
from workflow.errors import HasDependentsError, NotFoundError, SelfDeleteError, ValidationError
from workflow.inputs import clean_text, is_valid_email, parse_bool
from workflow.transaction import atomic

logger = logging.getLogger(__name__)

ENTITY = "user"

NAME_MAX_LENGTH = 150
EMAIL_MAX_LENGTH = 120
PASSWORD_MIN_LENGTH = 8


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(ENTITY, user_id)
    return user


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    query = User.query.filter(func.lower(User.email) == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def clean_user_fields(fields: Mapping[str, Any], user: User | None = None) -> dict:
    """Validate account fields. ``user`` is the account being edited, None on create.

    On edit a blank password keeps the current one.
    """
    errors: dict[str, str] = {}

    name = clean_text(fields.get("name"))
    if not name:
        errors["name"] = "Name is required."
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = "Name cannot exceed 150 characters."

    email = clean_text(fields.get("email"))
    if email:
        email = email.lower()
    if not email:
        errors["email"] = "Email is required."
    elif len(email) > EMAIL_MAX_LENGTH or not is_valid_email(email):
        errors["email"] = "Email must be a valid address."
    elif _email_taken(email, exclude_id=user.id if user is not None else None):
        errors["email"] = "Email is already in use."

    password = fields.get("password") or None
    if password is None:
        if user is None:
            errors["password"] = "Password is required."
    elif len(password) < PASSWORD_MIN_LENGTH:
        errors["password"] = "Password must be at least 8 characters."

    role = clean_text(fields.get("role"))
    if role is None:
        role = user.role if user is not None else DEFAULT_ROLE
    elif role not in ROLES:
        errors["role"] = "Role must be one of: " + ", ".join(ROLES) + "."

    is_active = parse_bool(fields.get("is_active"), default=True)
    if is_active is None:
        errors["is_active"] = "Active flag must be true or false."

    if errors:
        raise ValidationError(errors)

    return {
        "name": name,
        "email": email,
        "password": password,
        "role": role,
        "is_active": is_active,
    }


def build_user(fields: Mapping[str, Any]) -> User:
    """Validate ``fields`` and stage a new account in the session (no commit)."""
    values = clean_user_fields(fields)
    password = values.pop("password")
    user = User(**values)
    user.set_password(password)
    db.session.add(user)
    return user


def create_user(actor, fields: Mapping[str, Any]) -> User:
    require_capability(actor, MANAGE_USERS)
    with atomic():
        user = build_user(fields)

    logger.info(
        "User created id=%s email=%s role=%s created_by_id=%s",
        user.id,
        user.email,
        user.role,
        actor.id,
    )
    return user


def update_user(actor, user_id: int, fields: Mapping[str, Any]) -> User:
    require_capability(actor, MANAGE_USERS)
    user = get_user(user_id)
    values = clean_user_fields(fields, user=user)
    password = values.pop("password")

    with atomic():
        for field, value in values.items():
            setattr(user, field, value)
        if password:
            user.set_password(password)

    logger.info(
        "User updated id=%s role=%s is_active=%s updated_by_id=%s",
        user.id,
        user.role,
        user.is_active,
        actor.id,
    )
    return user


def dependent_counts(user_id: int) -> dict[str, int]:
    """How many purchase orders / cost estimates reference ``user_id``, per role."""

    def count(column) -> int:
        return db.session.query(func.count(column)).filter(column == user_id).scalar() or 0

    return {
        "purchase_orders_created": count(PurchaseOrder.created_by_id),
        "purchase_orders_validated": count(PurchaseOrder.validated_by_id),
        "purchase_orders_completed": count(PurchaseOrder.completed_by_id),
        "cost_estimates_created": count(CostEstimate.created_by_id),
        "cost_estimates_approved": count(CostEstimate.approved_by_id),
    }


def delete_user(actor, user_id: int) -> None:
    """Delete an account nothing references. Referenced accounts must be deactivated."""
    require_capability(actor, MANAGE_USERS)
    user = get_user(user_id)
    if user.id == actor.id:
        raise SelfDeleteError(user.id)

    references = dependent_counts(user.id)
    if any(references.values()):
        raise HasDependentsError(user.id, references)

    email = user.email
    with atomic():
        db.session.delete(user)

    logger.info("User deleted id=%s email=%s deleted_by_id=%s", user_id, email, actor.id)


def record_login(user: User) -> User:
    with atomic():
        user.last_login_at = utcnow()
    logger.info("User login id=%s", user.id)
    return user
