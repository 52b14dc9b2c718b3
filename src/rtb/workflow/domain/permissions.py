"""Role capabilities for workflow operations."""

from enum import Enum

from ...core.exceptions import ForbiddenError
from .entities import STAFF_ROLES, Actor, Role


class Operation(str, Enum):
    """Operations exposed by the workflow and inventory surfaces."""

    SUBMIT_APPLICATION = "submit_application"
    CANCEL_APPLICATION = "cancel_application"
    CONFIRM_RECEIPT = "confirm_receipt"
    VIEW_OWN_APPLICATIONS = "view_own_applications"
    VIEW_ALL_APPLICATIONS = "view_all_applications"
    REVIEW_APPLICATION = "review_application"
    SET_ELIGIBILITY = "set_eligibility"
    ASSIGN_DEVICES = "assign_devices"
    VIEW_SCHOOL_DEVICES = "view_school_devices"
    VIEW_ALL_DEVICES = "view_all_devices"
    MANAGE_INVENTORY = "manage_inventory"
    BULK_INTAKE = "bulk_intake"
    BULK_ASSIGN = "bulk_assign"


_SCHOOL_SIDE = frozenset({Role.SCHOOL, Role.HEADTEACHER, Role.SCHOOL_STAFF})

PERMISSIONS: dict[Operation, frozenset[Role]] = {
    Operation.SUBMIT_APPLICATION: frozenset({Role.SCHOOL}),
    Operation.CANCEL_APPLICATION: frozenset({Role.SCHOOL}),
    Operation.CONFIRM_RECEIPT: frozenset({Role.SCHOOL}),
    Operation.VIEW_OWN_APPLICATIONS: _SCHOOL_SIDE,
    Operation.VIEW_ALL_APPLICATIONS: STAFF_ROLES,
    Operation.REVIEW_APPLICATION: STAFF_ROLES,
    Operation.SET_ELIGIBILITY: STAFF_ROLES,
    Operation.ASSIGN_DEVICES: STAFF_ROLES,
    Operation.VIEW_SCHOOL_DEVICES: _SCHOOL_SIDE,
    Operation.VIEW_ALL_DEVICES: STAFF_ROLES,
    Operation.MANAGE_INVENTORY: STAFF_ROLES,
    Operation.BULK_INTAKE: STAFF_ROLES,
    Operation.BULK_ASSIGN: STAFF_ROLES,
}


def can(actor: Actor, operation: Operation) -> bool:
    return actor.role in PERMISSIONS[operation]


def require(actor: Actor, operation: Operation) -> None:
    """Raise ForbiddenError unless the actor's role allows the operation."""
    if not can(actor, operation):
        raise ForbiddenError(
            f"Role {actor.role.value} may not perform {operation.value}",
            role=actor.role.value,
            operation=operation.value,
        )


def capabilities(actor: Actor) -> list[Operation]:
    """Operations the actor may invoke, in declaration order."""
    return [op for op in Operation if can(actor, op)]
