"""HTTP API for the device application workflow."""

from .errors import register_exception_handlers
from .inventory_router import router as inventory_router
from .router import me_router
from .router import router as applications_router

__all__ = [
    "applications_router",
    "inventory_router",
    "me_router",
    "register_exception_handlers",
]
