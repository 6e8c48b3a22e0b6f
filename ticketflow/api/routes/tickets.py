from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ticketflow.dependencies.auth import CurrentUser
from ticketflow.dependencies.services import StaffUser, TicketServiceDep
from ticketflow.tickets.errors import (
    TicketConflictError,
    TicketForbiddenError,
    TicketNotFoundError,
    TicketServiceError,
)
from ticketflow.tickets.models import (
    IssueType,
    Ticket,
    TicketHistoryEntry,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
)

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketModel(BaseModel):
    id: str
    ticket_number: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    issue_type: IssueType
    assigned_to_id: str | None = None
    customer_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    sla_deadline: str | None = None
    sla_breached: bool = False
    created_at: str
    updated_at: str

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            issue_type=ticket.issue_type,
            assigned_to_id=ticket.assigned_to_id,
            customer_id=ticket.customer_id,
            tags=list(ticket.tags),
            sla_deadline=ticket.sla_deadline.isoformat() if ticket.sla_deadline else None,
            sla_breached=ticket.sla_breached,
            created_at=ticket.created_at.isoformat(),
            updated_at=ticket.updated_at.isoformat(),
        )


class TicketHistoryModel(BaseModel):
    id: str
    actor_id: str | None = None
    action: str
    field: str
    old_value: str | None = None
    new_value: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str

    @classmethod
    def from_entity(cls, entry: TicketHistoryEntry) -> "TicketHistoryModel":
        return cls(
            id=entry.id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            field=entry.field,
            old_value=entry.old_value,
            new_value=entry.new_value,
            metadata=dict(entry.metadata),
            created_at=entry.created_at.isoformat(),
        )


class TicketCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    priority: TicketPriority = TicketPriority.MEDIUM
    issue_type: IssueType = IssueType.OTHER
    tags: list[str] = Field(default_factory=list)
    customer_id: str | None = None


class TicketUpdateRequest(BaseModel):
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_id: str | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    tags: list[str] | None = None

    def to_update(self) -> TicketUpdate:
        update = TicketUpdate(
            status=self.status,
            priority=self.priority,
            title=self.title,
            description=self.description,
            tags=self.tags,
        )
        # An explicit null unassigns; an omitted field leaves the assignee alone.
        if "assigned_to_id" in self.model_fields_set:
            update.assigned_to_id = self.assigned_to_id
        return update


def _to_http_error(exc: TicketServiceError) -> HTTPException:
    if isinstance(exc, TicketNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TicketForbiddenError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, TicketConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("", response_model=TicketModel, status_code=201)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketModel:
    customer_id = payload.customer_id if user.is_staff else user.id
    ticket = await service.create_ticket(
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        issue_type=payload.issue_type,
        customer_id=customer_id,
        tags=payload.tags,
        actor_id=user.id,
    )
    return TicketModel.from_entity(ticket)


@router.get("", response_model=list[TicketModel], summary="List tickets")
async def list_tickets(
    service: TicketServiceDep,
    _: StaffUser,
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    assigned_to: str | None = None,
) -> list[TicketModel]:
    tickets = await service.list_tickets(status=status, priority=priority, assigned_to_id=assigned_to)
    return [TicketModel.from_entity(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketModel)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> TicketModel:
    try:
        ticket = await service.get_ticket_for(ticket_id, actor_id=user.id, actor_role=user.role)
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return TicketModel.from_entity(ticket)


@router.patch("/{ticket_id}", response_model=TicketModel)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketModel:
    update = payload.to_update()
    if update.is_empty():
        raise HTTPException(status_code=400, detail="No changes supplied")
    try:
        ticket = await service.update_ticket(ticket_id, update, actor_id=user.id, actor_role=user.role)
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return TicketModel.from_entity(ticket)


@router.get("/{ticket_id}/history", response_model=list[TicketHistoryModel])
async def get_ticket_history(ticket_id: str, service: TicketServiceDep, _: StaffUser) -> list[TicketHistoryModel]:
    try:
        history = await service.get_history(ticket_id)
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return [TicketHistoryModel.from_entity(entry) for entry in history]
