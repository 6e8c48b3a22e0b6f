from .prioritizer import QueueEntry, QueuePrioritizer, QueueSection

__all__ = ["QueueEntry", "QueuePrioritizer", "QueueSection"]
