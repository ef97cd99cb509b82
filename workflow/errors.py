"""Typed errors raised by workflow operations.

Every error carries a machine-readable ``code`` plus the structured data a
caller needs to explain the failure. Message wording is not part of the
contract; the presentation layer renders its own text from ``code`` and the
attributes.
"""

from __future__ import annotations

from typing import Iterable, Mapping


class WorkflowError(Exception):
    code = "workflow_error"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


class CapabilityError(WorkflowError):
    """The actor's role does not grant the capability, or the account is inactive."""

    code = "capability_denied"

    def __init__(self, capability: str | None, actor_id: int | None = None):
        self.capability = capability
        self.actor_id = actor_id
        if capability is None:
            message = f"User {actor_id} is not an active account"
        else:
            message = f"User {actor_id} lacks capability '{capability}'"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "capability": self.capability}


class GuardFailedError(WorkflowError):
    """The entity's current status does not allow the requested transition."""

    code = "guard_failed"

    def __init__(
        self,
        entity: str,
        entity_id: int,
        action: str,
        current_status: str,
        allowed_statuses: Iterable[str],
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.action = action
        self.current_status = current_status
        self.allowed_statuses = tuple(allowed_statuses)
        super().__init__(
            f"Cannot {action} {entity} {entity_id} in status '{current_status}' "
            f"(allowed: {', '.join(self.allowed_statuses)})"
        )

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "current_status": self.current_status,
            "allowed_statuses": list(self.allowed_statuses),
        }


class NotFoundError(WorkflowError):
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "entity": self.entity, "entity_id": self.entity_id}


class ValidationError(WorkflowError):
    """Malformed input. ``errors`` maps field keys (``items.0.quantity``) to messages."""

    code = "validation_failed"

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        super().__init__("Invalid input: " + ", ".join(sorted(self.errors)))

    def to_dict(self) -> dict:
        return {**super().to_dict(), "errors": dict(self.errors)}


class SelfDeleteError(WorkflowError):
    code = "self_delete"

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__("Users cannot delete their own account")


class HasDependentsError(WorkflowError):
    """User deletion blocked by purchase order / cost estimate references."""

    code = "has_dependents"

    def __init__(self, user_id: int, references: Mapping[str, int]):
        self.user_id = user_id
        self.references = {key: count for key, count in references.items() if count}
        super().__init__(
            f"User {user_id} is referenced by existing records; deactivate the account instead"
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "references": dict(self.references)}


class NumberingExhaustedError(WorkflowError):
    code = "numbering_exhausted"

    def __init__(self, prefix: str, year: int, limit: int):
        self.prefix = prefix
        self.year = year
        self.limit = limit
        super().__init__(f"No {prefix} numbers left for {year} (limit {limit})")
