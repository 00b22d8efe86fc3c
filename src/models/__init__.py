"""
TTip SQLAlchemy Models
======================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.
Device-local tables hang off ``LocalBase``.

Usage::

    from src.models import Base, Tip, Worker
"""

# -- Base & Mixins --
from .base import Base, LocalBase, UUIDPrimaryKeyMixin

# -- Record store --
from .worker import SubscriptionPlan, Worker
from .tip import Tip, TipStatus

# -- Device-local --
from .local import CachedWorker, QueueEntryRecord

__all__ = [
    "Base",
    "LocalBase",
    "UUIDPrimaryKeyMixin",
    "SubscriptionPlan",
    "Worker",
    "Tip",
    "TipStatus",
    "CachedWorker",
    "QueueEntryRecord",
]
