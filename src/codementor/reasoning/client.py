"""Reasoning client: code review and refactor calls over litellm.

Each public call builds a deterministic prompt, walks the configured
model chain (primary first, then fallbacks) and parses the JSON reply
into typed results. When every model fails, or the reply is empty or
not the expected JSON object, ``AnalysisFailure`` is raised; callers
decide whether to retry.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from typing import Any, cast

from circuitbreaker import CircuitBreakerError
from pydantic import ValidationError

from codementor.config import Settings
from codementor.constants import (
    CHARS_PER_TOKEN_ESTIMATE,
    DEFAULT_USAGE_MODEL,
    INPUT_TOKEN_SHARE,
    MODEL_PRICING,
    OUTPUT_TOKEN_SHARE,
    SCORE_MAX,
    SCORE_MIN,
    FeedbackCategory,
    FeedbackSeverity,
    SkillLevel,
)
from codementor.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    REFACTOR_SYSTEM_PROMPT,
    build_analysis_prompt,
    build_refactor_prompt,
)
from codementor.reasoning._llm_call import guarded_completion
from codementor.reasoning.schemas import (
    CodeAnalysisResult,
    FeedbackDraft,
    RefactorResult,
)
from codementor.resilience.errors import AnalysisFailure

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Length-based token estimate (~4 characters per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)


def estimate_cost(
    tokens: int, model: str = DEFAULT_USAGE_MODEL
) -> float:
    """Estimated USD cost assuming a 70/30 input/output token split.

    Unknown models are priced like ``gpt-4-turbo-preview``.
    """
    input_price, output_price = MODEL_PRICING.get(
        model, MODEL_PRICING[DEFAULT_USAGE_MODEL]
    )
    return (
        tokens * INPUT_TOKEN_SHARE * input_price
        + tokens * OUTPUT_TOKEN_SHARE * output_price
    )


class ReasoningClient:
    """Stateless wrapper around the external reasoning service."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    estimate_tokens = staticmethod(estimate_tokens)
    estimate_cost = staticmethod(estimate_cost)

    async def analyze(
        self,
        code: str,
        language: str,
        skill_level: str = SkillLevel.BEGINNER,
        include_personality: bool = False,
    ) -> CodeAnalysisResult:
        """Review *code* and return structured feedback."""
        messages = [
            {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_analysis_prompt(
                    code, language, skill_level, include_personality
                ),
            },
        ]
        return await self._call_chain(
            "analysis",
            messages,
            self._settings.analysis_temperature,
            parse_analysis_response,
        )

    async def refactor(
        self, code: str, language: str, suggestion: str
    ) -> RefactorResult:
        """Rewrite *code* following one feedback suggestion."""
        messages = [
            {"role": "system", "content": REFACTOR_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_refactor_prompt(
                    code, language, suggestion
                ),
            },
        ]
        return await self._call_chain(
            "refactor",
            messages,
            self._settings.refactor_temperature,
            parse_refactor_response,
        )

    async def _call_chain[T](
        self,
        component: str,
        messages: list[dict[str, str]],
        temperature: float,
        parse: Callable[[str], T],
    ) -> T:
        last_error: Exception | None = None
        for model in self._settings.litellm_model_chain:
            try:
                result = await guarded_completion(
                    model,
                    messages,
                    self._settings.llm_timeout_seconds,
                    temperature=temperature,
                )
                return parse(result.content)
            except CircuitBreakerError as exc:
                logger.warning(
                    "event=circuit_open model=%s component=%s",
                    model,
                    component,
                )
                last_error = exc
            except Exception as exc:
                logger.warning(
                    "event=llm_call_failed model=%s component=%s",
                    model,
                    component,
                    exc_info=True,
                )
                last_error = exc
        raise AnalysisFailure(
            f"Failed to run {component}: {last_error}"
        ) from last_error


# ── Response parsing ─────────────────────────────────────────────


def _load_object(raw: str) -> dict[str, Any]:
    if not raw.strip():
        raise AnalysisFailure("Empty response from reasoning service")
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise AnalysisFailure(
            f"Malformed response from reasoning service: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise AnalysisFailure(
            "Malformed response from reasoning service: expected object"
        )
    return cast(dict[str, Any], data)


def _normalize_category(value: Any) -> FeedbackCategory:
    text = str(value or "").strip().lower().replace("_", "-")
    try:
        return FeedbackCategory(text)
    except ValueError:
        return FeedbackCategory.BEST_PRACTICES


def _normalize_severity(value: Any) -> FeedbackSeverity:
    text = str(value or "").strip().lower()
    try:
        return FeedbackSeverity(text)
    except ValueError:
        return FeedbackSeverity.MEDIUM


def _optional_line(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value >= 1:
        return int(value)
    return None


def _clamp_score(value: Any) -> int:
    try:
        score = round(float(value))
    except (TypeError, ValueError):
        return SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, score))


def _malformed(detail: str) -> AnalysisFailure:
    return AnalysisFailure(
        f"Malformed response from reasoning service: {detail}"
    )


def _draft(index: int, raw_item: Any) -> FeedbackDraft:
    if not isinstance(raw_item, dict):
        raise _malformed(f"feedback[{index}] is not an object")
    item = cast(dict[str, Any], raw_item)
    example = item.get("codeExample")
    try:
        return FeedbackDraft(
            category=_normalize_category(item.get("category")),
            severity=_normalize_severity(item.get("severity")),
            message=item.get("message"),
            suggestion=item.get("suggestion"),
            code_example=str(example) if example else None,
            line_number=_optional_line(item.get("lineNumber")),
        )
    except ValidationError as exc:
        fields = ", ".join(str(e["loc"][0]) for e in exc.errors())
        raise _malformed(f"feedback[{index}] invalid {fields}") from exc


def parse_analysis_response(raw: str) -> CodeAnalysisResult:
    """Parse the review JSON.

    ``feedback`` must be a list whose items carry a non-empty
    ``message`` and ``suggestion``. Unknown categories and severities
    are normalised rather than rejected.
    """
    data = _load_object(raw)

    items: Any = data.get("feedback")
    if not isinstance(items, list):
        raise _malformed("feedback must be a list")
    drafts = [
        _draft(i, item) for i, item in enumerate(cast(list[Any], items))
    ]

    traits: Any = data.get("personalityTraits")
    return CodeAnalysisResult(
        feedback=drafts,
        summary=str(data.get("summary") or ""),
        overall_score=_clamp_score(data.get("overallScore", 0)),
        personality_traits=(
            [str(t) for t in cast(list[Any], traits) if t]
            if isinstance(traits, list)
            else None
        ),
    )


def parse_refactor_response(raw: str) -> RefactorResult:
    data = _load_object(raw)
    code = data.get("refactoredCode")
    if not isinstance(code, str) or not code:
        raise AnalysisFailure(
            "Malformed response from reasoning service: missing refactoredCode"
        )
    return RefactorResult(
        refactored_code=code,
        explanation=str(data.get("explanation") or ""),
    )

