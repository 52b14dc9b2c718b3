"""Eligibility evaluation.

A small rule table, kept separate because its output gates the
irreversible assignment step:

    review decision   override    is_eligible
    ---------------   --------    -----------
    Approved          None        True
    Approved          True/False  override
    Rejected          any         False
    Under Review      any         None

Eligibility notes are recorded alongside but never change the flag;
only an explicit boolean does.
"""

from typing import Optional

from ...core.exceptions import ValidationError
from .entities import REVIEW_DECISIONS, ApplicationStatus, DeviceApplication


def evaluate_eligibility(
    decision: ApplicationStatus,
    override: Optional[bool] = None,
) -> Optional[bool]:
    """Compute the eligibility flag that follows a review decision.

    Raises:
        ValidationError: If decision is not a review outcome
    """
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(
            f"{getattr(decision, 'value', decision)} is not a review decision",
            field="status",
        )
    if decision == ApplicationStatus.APPROVED:
        return True if override is None else bool(override)
    if decision == ApplicationStatus.REJECTED:
        return False
    return None


def is_assignable(application: DeviceApplication) -> bool:
    """True when devices may be bound to the application."""
    return (
        application.status == ApplicationStatus.APPROVED
        and application.is_eligible is True
        and not application.assigned_devices
    )
