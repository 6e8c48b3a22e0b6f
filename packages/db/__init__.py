"""Database models and utilities."""

from .models import (
    AutomationExecutionTable,
    AutomationRuleTable,
    NotificationTable,
    SlaConfigTable,
    TicketHistoryTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "AutomationExecutionTable",
    "AutomationRuleTable",
    "NotificationTable",
    "SlaConfigTable",
    "TicketHistoryTable",
    "TicketTable",
    "UserTable",
]
