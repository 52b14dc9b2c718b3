"""Use cases for the device application workflow.

Each use case represents a user action and orchestrates domain logic
through the ports, without knowing about infrastructure details.
"""

from .assignment_engine import AssignmentEngine
from .bulk_operations import BulkAssignUseCase, BulkIntakeUseCase
from .inventory import InventoryUseCase
from .workflow_controller import WorkflowController

__all__ = [
    "AssignmentEngine",
    "WorkflowController",
    "InventoryUseCase",
    "BulkIntakeUseCase",
    "BulkAssignUseCase",
]
