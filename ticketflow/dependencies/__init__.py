from .auth import CurrentUser, User, get_current_user, role_required
from .services import (
    AutomationServiceDep,
    QueuePrioritizerDep,
    StaffUser,
    SupervisorUser,
    TicketServiceDep,
)

__all__ = [
    "AutomationServiceDep",
    "CurrentUser",
    "QueuePrioritizerDep",
    "StaffUser",
    "SupervisorUser",
    "TicketServiceDep",
    "User",
    "get_current_user",
    "role_required",
]
