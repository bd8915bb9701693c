"""Code snippet ORM model. Immutable once created."""

from typing import Any

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from codementor.models._ids import new_id
from codementor.models.base import Base


class CodeSnippet(Base):
    __tablename__ = "code_snippets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    session_id: Mapped[str] = mapped_column(
        ForeignKey("code_sessions.id", ondelete="CASCADE"), index=True
    )
    # Insertion order within the session
    position: Mapped[int] = mapped_column(Integer, default=0)
    content: Mapped[str] = mapped_column(Text)
    file_name: Mapped[str] = mapped_column(String(255))
    line_count: Mapped[int] = mapped_column(Integer)
    path: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "file_name": self.file_name,
            "line_count": self.line_count,
            "path": self.path,
        }
