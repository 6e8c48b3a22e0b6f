from .monitor import SlaMonitor
from .policy import DEFAULT_SLA_TARGETS, SlaConfigRepository, SlaPolicy, SlaTargets
from .scheduler import SlaScheduler

__all__ = [
    "DEFAULT_SLA_TARGETS",
    "SlaConfigRepository",
    "SlaMonitor",
    "SlaPolicy",
    "SlaScheduler",
    "SlaTargets",
]
