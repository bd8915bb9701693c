"""One completion request against one model, behind a circuit breaker.

Every model in the chain gets its own breaker, so a provider that keeps
failing is skipped quickly and the client moves on to the next model.
Rate-limit responses are retried here with jittered backoff and do not
count towards opening the breaker; every other error surfaces to the
caller after one try.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from codementor.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    LLM_MAX_OUTPUT_TOKENS,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion


@dataclass(frozen=True)
class CompletionReply:
    """Text of the first choice plus provider-reported token usage."""

    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


def _counts_as_outage(exc_type: type, exc: BaseException) -> bool:
    # circuitbreaker passes (type, value); 429s are backpressure
    return not issubclass(exc_type, RateLimitError)


_breakers: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def breaker_for(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    breaker = _breakers.get(model)
    if breaker is None:
        breaker = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_counts_as_outage,
            name=f"reasoning:{model}",
        )
        _breakers[model] = breaker
    return breaker


def reset_breakers() -> None:
    """Forget all breaker state (tests, operator resets)."""
    _breakers.clear()


def _request(
    model: str,
    messages: list[dict[str, str]],
    timeout: int,
    temperature: float | None,
    json_mode: bool,
) -> dict[str, Any]:
    request: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "timeout": timeout,
        "max_tokens": LLM_MAX_OUTPUT_TOKENS,
    }
    if temperature is not None:
        request["temperature"] = temperature
    if json_mode:
        request["response_format"] = {"type": "json_object"}
    return request


def _reply(response: Any, model: str) -> CompletionReply:
    usage: Any = getattr(response, "usage", None)
    choices: Any = getattr(response, "choices", None) or []
    content: Any = choices[0].message.content if choices else ""
    return CompletionReply(
        content=str(content or ""),
        model=model,
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )


@retry(
    stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
    ),
    retry=retry_if_exception_type(RateLimitError),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def guarded_completion(
    model: str,
    messages: list[dict[str, str]],
    timeout: int,
    *,
    temperature: float | None = None,
    json_mode: bool = True,
) -> CompletionReply:
    """Complete *messages* on *model*.

    Raises ``CircuitBreakerError`` without calling out while the model's
    breaker is open.
    """
    breaker = breaker_for(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        response: Any = await _acompletion(
            **_request(model, messages, timeout, temperature, json_mode)
        )
    reply = _reply(response, model)
    logger.debug(
        "event=llm_reply model=%s prompt_tokens=%d completion_tokens=%d",
        model,
        reply.prompt_tokens,
        reply.completion_tokens,
    )
    return reply
