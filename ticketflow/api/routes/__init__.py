"""HTTP route modules."""

from . import automation, metrics, ping, queue, tickets

__all__ = ["automation", "metrics", "ping", "queue", "tickets"]
