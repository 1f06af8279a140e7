"""Retry policies attached to each pipeline task kind.

A ``RetryPolicy`` is a list of rules; the rule matching the last raised
exception decides how many attempts are allowed and how long to wait
before the next one. Exceptions no rule matches propagate immediately.
Execution is delegated to tenacity.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from chainstream.core.errors import (
    NotFoundError,
    RetryExhaustedError,
    TransientNetworkError,
    UpstreamApiError,
)
from chainstream.core.logging import get_logger

log = get_logger("retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryRule:
    exceptions: Tuple[Type[BaseException], ...]
    max_attempts: int
    delay_seconds: float
    excluded: Tuple[Type[BaseException], ...] = ()

    def matches(self, exc: BaseException | None) -> bool:
        if exc is None:
            return False
        return isinstance(exc, self.exceptions) and not isinstance(exc, self.excluded)


@dataclass(frozen=True)
class RetryPolicy:
    rules: Tuple[RetryRule, ...] = field(default_factory=tuple)

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(())

    def rule_for(self, exc: BaseException | None) -> Optional[RetryRule]:
        for rule in self.rules:
            if rule.matches(exc):
                return rule
        return None

    @property
    def max_attempts(self) -> int:
        return max((rule.max_attempts for rule in self.rules), default=1)

    def _stop(self, state: RetryCallState) -> bool:
        rule = self.rule_for(state.outcome.exception())
        return rule is None or state.attempt_number >= rule.max_attempts

    def _wait(self, state: RetryCallState) -> float:
        rule = self.rule_for(state.outcome.exception())
        return rule.delay_seconds if rule else 0.0

    @staticmethod
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception()
        log.warning(
            f"Attempt {state.attempt_number} failed with {type(exc).__name__}: {exc}; "
            f"retrying in {state.next_action.sleep if state.next_action else 0}s"
        )

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` under this policy; raises RetryExhaustedError when the budget is spent."""
        retrying = AsyncRetrying(
            retry=retry_if_exception(lambda exc: self.rule_for(exc) is not None),
            stop=self._stop,
            wait=self._wait,
            before_sleep=self._before_sleep,
            reraise=False,
        )
        try:
            return await retrying(fn, *args, **kwargs)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            raise RetryExhaustedError(
                f"Gave up after {attempts} attempts: {type(last_error).__name__}: {last_error}",
                attempts=attempts,
                last_error=last_error,
            ) from last_error


_POLL_ERRORS = (TransientNetworkError, UpstreamApiError, asyncio.TimeoutError)


def _is_empty(result: Any) -> bool:
    return not result


@dataclass(frozen=True)
class BlockPollPolicy:
    """Polls the indexer until it has caught up with the chain node."""

    max_polls: int = 100
    poll_timeout: float = 5.0
    delay_seconds: float = 1.0

    async def poll(self, fetch: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
        """Return the first non-empty result, or None once ``max_polls`` polls came back empty."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_polls),
            wait=wait_fixed(self.delay_seconds),
            retry=retry_if_result(_is_empty) | retry_if_exception_type(_POLL_ERRORS),
            retry_error_callback=lambda state: None,
        )
        return await retrying(self._poll_once, fetch)

    async def _poll_once(self, fetch: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
        return await asyncio.wait_for(fetch(), timeout=self.poll_timeout)


def fetch_retry_policy(
    attempts: int = 3,
    transient_delay: float = 3.0,
    api_delay: float = 5.0,
) -> RetryPolicy:
    """Default policy for transaction, address and smart contract fetches."""
    return RetryPolicy(
        (
            RetryRule((TransientNetworkError,), attempts, transient_delay),
            RetryRule((UpstreamApiError,), attempts, api_delay, excluded=(NotFoundError,)),
        )
    )
