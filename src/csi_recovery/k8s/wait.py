# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/k8s/wait.py
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from csi_recovery.errors import OperationCancelled, QuiesceTimeoutError


def poll_until(
    condition: Callable[[], bool],
    *,
    interval: float,
    timeout: float,
    cancel: Optional[threading.Event] = None,
    description: str = "condition",
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Call *condition* immediately and then every *interval* seconds until it
    returns True.

    Raises QuiesceTimeoutError once *timeout* seconds have passed, and
    OperationCancelled as soon as *cancel* is set. An exception raised by
    *condition* stops polling and propagates unchanged.
    """
    cancel = cancel or threading.Event()
    end = clock() + timeout

    while True:
        if cancel.is_set():
            raise OperationCancelled(f"cancelled while waiting for {description}")
        if condition():
            return
        remaining = end - clock()
        if remaining <= 0:
            raise QuiesceTimeoutError(f"timed out after {timeout:g}s waiting for {description}")
        # Event.wait doubles as an interruptible sleep.
        if cancel.wait(min(interval, remaining)):
            raise OperationCancelled(f"cancelled while waiting for {description}")
