"""State management modules."""

from dispatch.state.lock import AssignmentLock
from dispatch.state.registry import DurableDocument, EntityRegistry
from dispatch.state.store import LoadSource, PersistenceStore
from dispatch.state.workflow import OrderTransitions

__all__ = [
    "AssignmentLock",
    "DurableDocument",
    "EntityRegistry",
    "LoadSource",
    "OrderTransitions",
    "PersistenceStore",
]
