"""User ORM model.

Accounts are created and authenticated elsewhere; the pipeline only
reads the reviewer preferences stored here.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from codementor.constants import SkillLevel, UserRole
from codementor.models._ids import new_id
from codementor.models.base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    email: Mapped[str] = mapped_column(String(320), unique=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER)
    skill_level: Mapped[str] = mapped_column(
        String(20), default=SkillLevel.BEGINNER
    )
    language_focus: Mapped[list[str]] = mapped_column(
        JSON, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "skill_level": self.skill_level,
            "language_focus": list(self.language_focus or []),
        }
