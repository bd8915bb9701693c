"""SQLAlchemy ORM models."""

from codementor.models.base import Base
from codementor.models.feedback import Feedback
from codementor.models.job import AnalysisJob
from codementor.models.progress import ProgressProfile
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet
from codementor.models.usage import UsageRecord
from codementor.models.user import User

__all__ = [
    "AnalysisJob",
    "Base",
    "CodeSession",
    "CodeSnippet",
    "Feedback",
    "ProgressProfile",
    "UsageRecord",
    "User",
]
