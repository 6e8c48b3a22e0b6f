"""In-app notification delivery."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from packages.db.models import NotificationTable

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    TICKET_UPDATE = "TICKET_UPDATE"
    SLA_WARNING = "SLA_WARNING"
    SLA_BREACH = "SLA_BREACH"
    AUTOMATION_ALERT = "AUTOMATION_ALERT"


class NotificationDispatcher(Protocol):
    async def notify(
        self,
        user_id: str,
        kind: NotificationKind,
        ticket_id: str | None,
        payload: Mapping[str, Any],
    ) -> None:
        ...


class NotificationService:
    """Persist notifications so clients can poll or be pushed them.

    Delivery is fire-and-forget: storage failures are logged and never raised to the
    caller, so a notification outage cannot roll back the ticket change that caused it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def notify(
        self,
        user_id: str,
        kind: NotificationKind,
        ticket_id: str | None,
        payload: Mapping[str, Any],
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        NotificationTable(
                            id=str(uuid.uuid4()),
                            user_id=user_id,
                            kind=kind.value,
                            ticket_id=ticket_id,
                            payload=dict(payload),
                            created_at=datetime.now(timezone.utc),
                        )
                    )
        except SQLAlchemyError:
            logger.exception("Failed to store %s notification for user %s", kind.value, user_id)
            return
        logger.debug("Notified user %s (%s) about ticket %s", user_id, kind.value, ticket_id)


def ticket_created_payload(ticket_number: str, ticket_title: str) -> dict[str, Any]:
    return {
        "action": "created",
        "title": "New ticket",
        "content": f'Ticket {ticket_number} "{ticket_title}" has been opened.',
    }


def ticket_assigned_payload(ticket_title: str) -> dict[str, Any]:
    return {
        "action": "assigned",
        "title": "New ticket assigned",
        "content": f'Ticket "{ticket_title}" has been assigned to you.',
    }


def status_changed_payload(ticket_title: str, new_status: str) -> dict[str, Any]:
    label = new_status.replace("_", " ").lower()
    return {
        "action": "status_changed",
        "title": "Status updated",
        "content": f'Ticket "{ticket_title}" is now {label}.',
        "newStatus": new_status,
    }


def priority_changed_payload(ticket_title: str, new_priority: str, *, for_customer: bool = False) -> dict[str, Any]:
    if for_customer:
        return {
            "action": "priority_changed",
            "title": "Ticket marked urgent",
            "content": f'Your ticket "{ticket_title}" has been marked as urgent.',
            "newPriority": new_priority,
        }
    return {
        "action": "priority_changed",
        "title": "Priority changed",
        "content": f'Ticket "{ticket_title}" now has {new_priority.lower()} priority.',
        "newPriority": new_priority,
    }


def sla_warning_payload(ticket_title: str, hours_remaining: int) -> dict[str, Any]:
    return {
        "title": "SLA warning",
        "content": f'Ticket "{ticket_title}" must be handled within {hours_remaining}h.',
        "hoursRemaining": hours_remaining,
    }


def sla_breach_payload(ticket_title: str) -> dict[str, Any]:
    return {
        "title": "SLA breached",
        "content": f'Ticket "{ticket_title}" has exceeded its SLA deadline.',
    }
