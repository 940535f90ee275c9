# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/csi/registry.py
from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

from .client import DriverClient, open_driver_client

log = logging.getLogger("csi_recovery")

Connect = Callable[[str], DriverClient]


class DriverRegistry:
    """
    Driver name -> open client.

    Built once by ``DriverRegistry.open`` and read-only afterwards. The
    registry owns every client it opened, including ones that lost a
    duplicate-name race, and closes them all when the ``with`` block exits.
    """

    def __init__(self, drivers: Dict[str, DriverClient], stack: ExitStack):
        self._drivers = drivers
        self._stack = stack

    @classmethod
    def open(
        cls,
        endpoints: Iterable[str],
        *,
        connect: Optional[Connect] = None,
    ) -> "DriverRegistry":
        """
        Connect to every endpoint and key the client by its reported driver
        name. Any identify failure is fatal: clients opened so far are closed
        and the error propagates.
        """
        connect = connect or open_driver_client
        drivers: Dict[str, DriverClient] = {}

        with ExitStack() as stack:
            for endpoint in endpoints:
                client = connect(endpoint)
                stack.callback(client.close)
                name = client.identify()
                if name in drivers:
                    log.warning(
                        "driver %s reported by %s is already registered from %s; ignoring",
                        name, endpoint, drivers[name].endpoint,
                    )
                    continue
                log.info("registered CSI driver driver=%s endpoint=%s", name, endpoint)
                drivers[name] = client
            return cls(drivers, stack.pop_all())

    # ------------------------------------------------------------------
    def get(self, name: str) -> Optional[DriverClient]:
        return self._drivers.get(name)

    def items(self) -> Iterator[Tuple[str, DriverClient]]:
        return iter(self._drivers.items())

    def names(self) -> list[str]:
        return sorted(self._drivers)

    # ------------------------------------------------------------------
    def close(self) -> None:
        self._stack.close()

    def __enter__(self) -> "DriverRegistry":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
