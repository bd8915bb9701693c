"""Intake models accepted by the session service.

The HTTP layer binds request bodies straight to these; the CLI or any
other caller builds them the same way.
"""

from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

from codementor.constants import SessionOrigin

# Surrounding whitespace is dropped before the length check
Title = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)
]
Language = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)
]


class SnippetFile(BaseModel):
    """One repository file submitted with a repository-origin session."""

    content: str = Field(min_length=1)
    file_name: str | None = Field(default=None, max_length=255)
    path: str | None = Field(default=None, max_length=1000)


class SessionCreate(BaseModel):
    """A new analysis session: one snippet, or a repository's files."""

    title: Title
    language: Language
    origin: SessionOrigin = SessionOrigin.SNIPPET
    code: str | None = None
    file_name: str | None = Field(default=None, max_length=255)
    repository_url: str | None = Field(default=None, max_length=500)
    repository_branch: str | None = Field(default=None, max_length=200)
    files: list[SnippetFile] = Field(
        default_factory=lambda: list[SnippetFile]()
    )
