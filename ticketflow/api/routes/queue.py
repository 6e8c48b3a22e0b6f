from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ticketflow.dependencies.services import QueuePrioritizerDep, StaffUser, TicketServiceDep
from ticketflow.queue import QueueEntry, QueueSection
from ticketflow.queue.prioritizer import SECTION_LABELS

from .tickets import TicketModel

router = APIRouter(prefix="/queue", tags=["queue"])


class QueueItemModel(BaseModel):
    score: float
    section: QueueSection
    ticket: TicketModel

    @classmethod
    def from_entry(cls, entry: QueueEntry) -> "QueueItemModel":
        return cls(score=round(entry.score, 2), section=entry.section, ticket=TicketModel.from_entity(entry.ticket))


class QueueSectionModel(BaseModel):
    section: QueueSection
    label: str
    items: list[QueueItemModel] = Field(default_factory=list)


class NextTicketModel(BaseModel):
    ticket: TicketModel | None = None


@router.get("", response_model=list[QueueSectionModel], summary="Work queue grouped by section")
async def get_queue(
    service: TicketServiceDep,
    prioritizer: QueuePrioritizerDep,
    _: StaffUser,
    assigned_to: str | None = None,
) -> list[QueueSectionModel]:
    tickets = await service.list_tickets(assigned_to_id=assigned_to)
    groups = prioritizer.group_by_section(tickets)
    return [
        QueueSectionModel(
            section=section,
            label=SECTION_LABELS[section],
            items=[QueueItemModel.from_entry(entry) for entry in entries],
        )
        for section, entries in groups.items()
    ]


@router.get("/next", response_model=NextTicketModel, summary="Next ticket to work on")
async def get_next_ticket(
    service: TicketServiceDep,
    prioritizer: QueuePrioritizerDep,
    _: StaffUser,
    current_id: str | None = None,
    assigned_to: str | None = None,
) -> NextTicketModel:
    tickets = await service.list_tickets(assigned_to_id=assigned_to)
    ticket = prioritizer.next_ticket(tickets, current_id=current_id)
    return NextTicketModel(ticket=TicketModel.from_entity(ticket) if ticket is not None else None)
