"""Base Models and Mixins"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr

from app.database import Base
from app.utils.time import get_utc_now


class BaseModel(Base):
    """
    Base model class with common fields for all models.

    Provides:
    - UUID primary key
    - created_at timestamp
    - updated_at timestamp
    """
    __abstract__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    updated_at = Column(DateTime, default=get_utc_now, onupdate=get_utc_now, nullable=False)


class OwnerScopedMixin:
    """
    Mixin for records owned by a user, optionally scoped to one family member.

    Provides:
    - user_id foreign key (required)
    - family_member_id foreign key (NULL = the account holder)
    """

    @declared_attr
    def user_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )

    @declared_attr
    def family_member_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("family_members.id", ondelete="SET NULL"),
            nullable=True,
            index=True
        )
