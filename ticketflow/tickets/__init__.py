"""Ticket domain models and lifecycle policy. The service lives in ``ticketflow.tickets.service``."""

from .errors import TicketConflictError, TicketForbiddenError, TicketNotFoundError, TicketServiceError
from .models import Role, Ticket, TicketHistoryEntry, TicketPriority, TicketStatus, TicketUpdate
from .state import TicketStateMachine

__all__ = [
    "Role",
    "Ticket",
    "TicketConflictError",
    "TicketForbiddenError",
    "TicketHistoryEntry",
    "TicketNotFoundError",
    "TicketPriority",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketUpdate",
]
