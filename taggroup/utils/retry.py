"""Backoff between attempts against a prompt backend."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class BackoffPolicy(BaseModel):
    """Exponential delay with random jitter, capped at ``max_delay`` seconds."""

    base: float = 1.5
    jitter: float = 0.5
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        return min(self.base**attempt, self.max_delay) + random.uniform(0, self.jitter)


async def schedule_retry(attempt: int, policy: Optional[BackoffPolicy] = None) -> None:
    delay = (policy or BackoffPolicy()).delay_for(attempt)
    logger.debug(f"Waiting {delay:.2f}s before attempt {attempt + 1}")
    await asyncio.sleep(delay)
