from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from ticketflow.automation.service import AutomationService
from ticketflow.queue import QueuePrioritizer
from ticketflow.tickets.models import Role
from ticketflow.tickets.service import TicketService

from .auth import User, role_required

require_staff = role_required(Role.AGENT, Role.SUPERVISOR, Role.ADMIN)
require_supervisor = role_required(Role.SUPERVISOR, Role.ADMIN)

StaffUser = Annotated[User, Depends(require_staff)]
SupervisorUser = Annotated[User, Depends(require_supervisor)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_automation_service(request: Request) -> AutomationService:
    service = getattr(request.app.state, "automation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Automation service is not configured")
    return service


async def get_queue_prioritizer(request: Request) -> QueuePrioritizer:
    prioritizer = getattr(request.app.state, "queue_prioritizer", None)
    return prioritizer or QueuePrioritizer()


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
AutomationServiceDep = Annotated[AutomationService, Depends(get_automation_service)]
QueuePrioritizerDep = Annotated[QueuePrioritizer, Depends(get_queue_prioritizer)]
