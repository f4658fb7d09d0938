# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Retry policy with exponential backoff and error-kind aware limits.

Transient failures (timeouts, unclassified errors) are retried up to the
attempt ceiling with a doubling delay. Constraint violations get a single
extra attempt after a short fixed delay. Missing tables are never retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from models.enums import ErrorKind
from .errors import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff."""
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 5.0
    validation_retry_delay: float = 0.5
    classify: Callable[[BaseException], ErrorKind] = classify_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """
        Run an async operation under this policy.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label used in log records

        Returns:
            The operation result

        Raises:
            The last error once the policy gives up
        """
        attempt = 0
        validation_retried = False

        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                kind = self.classify(e)

                if kind == ErrorKind.MISSING_TABLE:
                    raise

                # A constraint violation always gets its one extra attempt
                if kind == ErrorKind.VALIDATION:
                    if validation_retried:
                        raise
                    validation_retried = True
                    delay = self.validation_retry_delay
                elif attempt >= self.max_attempts:
                    raise
                else:
                    delay = self.backoff_delay(attempt)

                logger.warning(
                    f"{description} failed, retrying",
                    extra={
                        "extra_fields": {
                            "attempt": attempt,
                            "error_kind": kind.value,
                            "retry_delay": delay,
                            "error": str(e)
                        }
                    }
                )

                await self.sleep(delay)
