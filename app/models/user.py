"""Account owner and family member models.

Both tables are managed by the account service; bills only reference them
for ownership and scoping.
"""

from sqlalchemy import Column, String, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=False, default="")
    last_name = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)

    family_members = relationship("FamilyMember", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class FamilyMember(BaseModel):
    __tablename__ = "family_members"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    relationship_type = Column(String(50), nullable=True)

    user = relationship("User", back_populates="family_members")

    def __repr__(self) -> str:
        return f"<FamilyMember {self.name}>"
