from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from .config import Settings
from .logging import get_logger


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff for calls against external systems."""

    max_retries: int = 3
    initial_delay_s: float = 1.0
    backoff_base: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.external_max_retries,
            initial_delay_s=settings.retry_initial_delay_s,
            backoff_base=settings.retry_backoff_base,
        )

    def retrying(
        self,
        should_retry: Callable[[BaseException], bool],
        *,
        label: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncRetrying:
        """Attempt iterator for one external call.

        Only errors accepted by ``should_retry`` are retried; the last error is
        re-raised unchanged so callers keep their failure contract.
        """
        logger = get_logger(component="retry", operation=label)

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else None
            logger.warning("external_call_retry", attempt=retry_state.attempt_number, delay_s=delay, error=str(error))

        return AsyncRetrying(
            retry=retry_if_exception(should_retry),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_delay_s, exp_base=self.backoff_base),
            before_sleep=log_retry,
            sleep=sleep,
            reraise=True,
        )


__all__ = ["RetryPolicy"]
