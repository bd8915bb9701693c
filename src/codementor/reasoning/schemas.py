"""Pydantic models for reasoning service output."""

from pydantic import BaseModel, ConfigDict, Field

from codementor.constants import FeedbackCategory, FeedbackSeverity


class FeedbackDraft(BaseModel):
    """One review observation as returned by the reasoning service."""

    model_config = ConfigDict(str_strip_whitespace=True)

    category: FeedbackCategory = FeedbackCategory.BEST_PRACTICES
    severity: FeedbackSeverity = FeedbackSeverity.MEDIUM
    message: str = Field(min_length=1)
    suggestion: str = Field(min_length=1)
    code_example: str | None = None
    line_number: int | None = None


class CodeAnalysisResult(BaseModel):
    """Parsed output of one analysis call."""

    feedback: list[FeedbackDraft] = Field(
        default_factory=lambda: list[FeedbackDraft]()
    )
    summary: str = ""
    overall_score: int = 0
    personality_traits: list[str] | None = None


class RefactorResult(BaseModel):
    refactored_code: str
    explanation: str = ""
