"""Consolidated LLM prompts for code review.

All prompt text lives here so the reasoning client stays a thin
build-call-parse layer. Templates are deterministic: the same code,
language and skill level always produce the same messages.
"""

from codementor.constants import SkillLevel

# ── Skill framing (deterministic dict lookup) ─────────────────────

SKILL_CONTEXT_MAP: dict[str, str] = {
    SkillLevel.BEGINNER: (
        "The developer is a beginner. Provide encouraging, educational "
        "feedback with clear explanations."
    ),
    SkillLevel.INTERMEDIATE: (
        "The developer is intermediate. Provide advanced tips and best "
        "practices."
    ),
    SkillLevel.ADVANCED: (
        "The developer is advanced. Focus on optimization, architecture, "
        "and edge cases."
    ),
}

# ── Analysis ───────────────────────────────────────────────────────

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert code reviewer and mentor. Provide actionable, "
    "specific feedback in structured JSON format."
)

_OUTPUT_CONTRACT = """\
Provide comprehensive feedback in the following JSON structure:
{{
  "feedback": [
    {{
      "category": "performance" | "security" | "readability" | "architecture" | "best-practices",
      "severity": "low" | "medium" | "high",
      "message": "Clear description of the issue",
      "suggestion": "Specific actionable suggestion",
      "codeExample": "Optional improved code example",
      "lineNumber": 0
    }}
  ],
  "summary": "Overall assessment of the code",
  "overallScore": 0-100{personality}
}}"""

_PERSONALITY_FIELD = ',\n  "personalityTraits": ["trait1", "trait2"]'

_FOCUS = """\
Focus on:
- Performance optimizations
- Security vulnerabilities
- Code readability and maintainability
- Architectural improvements
- Best practices for {language}
- Specific, actionable suggestions (not generic advice)"""


def build_analysis_prompt(
    code: str,
    language: str,
    skill_level: str,
    include_personality: bool,
) -> str:
    """Build the user prompt for one review call."""
    skill = SKILL_CONTEXT_MAP.get(
        skill_level, SKILL_CONTEXT_MAP[SkillLevel.BEGINNER]
    )
    contract = _OUTPUT_CONTRACT.format(
        personality=_PERSONALITY_FIELD if include_personality else ""
    )
    return (
        f"Analyze the following {language} code. {skill}\n\n"
        f"Code:\n```{language}\n{code}\n```\n\n"
        f"{contract}\n\n"
        f"{_FOCUS.format(language=language)}"
    )


# ── Refactor ───────────────────────────────────────────────────────

REFACTOR_SYSTEM_PROMPT = (
    "You are an expert code refactoring assistant. Provide clean, "
    "improved code with clear explanations."
)


def build_refactor_prompt(
    code: str, language: str, suggestion: str
) -> str:
    return (
        f'Refactor the following {language} code based on this feedback: '
        f'"{suggestion}"\n\n'
        f"Original code:\n```{language}\n{code}\n```\n\n"
        "Provide:\n"
        "1. The refactored code\n"
        "2. A detailed explanation of what changed and why\n\n"
        "Respond in JSON format:\n"
        '{\n  "refactoredCode": "...",\n  "explanation": "..."\n}'
    )
