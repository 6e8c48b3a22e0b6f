class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when an operation targets a non-existent ticket."""


class TicketForbiddenError(TicketServiceError):
    """Raised when the actor is not allowed to perform the requested change."""


class TicketConflictError(TicketServiceError):
    """Raised when a change conflicts with the ticket's current state or the transition policy."""
