"""Rule-based ticket automation: conditions, actions and the engine that runs them."""

from .actions import ActionExecutor
from .conditions import ConditionEvaluator, ConditionTypeError
from .engine import AutomationEngine
from .locks import TicketLockRegistry
from .models import (
    AutomationAction,
    AutomationCondition,
    AutomationExecution,
    AutomationRule,
    AutomationTrigger,
    RuleValidationError,
)
from .triggers import trigger_from_event

__all__ = [
    "ActionExecutor",
    "AutomationAction",
    "AutomationCondition",
    "AutomationEngine",
    "AutomationExecution",
    "AutomationRule",
    "AutomationTrigger",
    "ConditionEvaluator",
    "ConditionTypeError",
    "RuleValidationError",
    "TicketLockRegistry",
    "trigger_from_event",
]
