# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/observers/interface.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Receives every remediation event emitted on an EventBus.

    ``notify`` runs inline on the remediation thread; a slow observer slows
    the pass, a failing one is logged and ignored by the bus.
    """

    def notify(self, event: BaseEvent) -> None: ...
