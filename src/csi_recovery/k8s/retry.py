# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/k8s/retry.py
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from csi_recovery.errors import ConflictError, ConflictExhaustedError

log = logging.getLogger("csi_recovery")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded backoff. The defaults match client-go's retry.DefaultRetry:
    5 attempts, 10ms apart, no growth, 10% jitter.
    """

    steps: int = 5
    duration: float = 0.01
    factor: float = 1.0
    jitter: float = 0.1

    def delays(self):
        delay = self.duration
        for _ in range(self.steps - 1):
            yield delay + (random.uniform(0, self.jitter * delay) if self.jitter else 0.0)
            delay *= self.factor


DEFAULT_RETRY = RetryPolicy()


def retry_on_conflict(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy = DEFAULT_RETRY,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run *fn* until it stops raising ConflictError or the policy runs out.

    *fn* must refetch the object it updates so each attempt applies its change
    on top of the latest resourceVersion. Other errors propagate immediately.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except ConflictError as exc:
            if on_retry:
                on_retry(attempt, exc)
            delay = next(delays, None)
            if delay is None:
                raise ConflictExhaustedError(
                    f"update still conflicting after {attempt} attempts: {exc}",
                    status=exc.status,
                ) from exc
            log.debug("conflict on attempt %d, retrying in %.3fs", attempt, delay)
            sleep(delay)

