"""
Declarative bases and shared column mixins.

``Base`` carries the server-of-record tables (workers, tips).
``LocalBase`` carries the device-local tables (queue entries, worker cache)
so the two metadata sets can be created against different databases.
"""

import uuid

from sqlalchemy import Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class LocalBase(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
