# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/cli/app.py
from __future__ import annotations

import functools
import logging
import platform
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from csi_recovery import __version__
from csi_recovery.config.loader import load_config
from csi_recovery.csi.client import open_driver_client
from csi_recovery.csi.registry import DriverRegistry
from csi_recovery.errors import RecoveryError
from csi_recovery.k8s.client import new_cluster_client
from csi_recovery.logging.log import init_logging
from csi_recovery.observers.dispatcher import EventBus
from csi_recovery.observers.events import new_ctx
from csi_recovery.observers.jsonfile import JsonFileObserver
from csi_recovery.observers.logger import LoggerObserver
from csi_recovery.remediation.controller import RemediationController, check_driver_health
from csi_recovery.remediation.events import DriversDiscovered
from csi_recovery.workload.bounce import WorkloadBouncer


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="CSI volume recovery for a single node")

EXIT_FATAL = 1
EXIT_VOLUME_FAILURES = 2


def version_lines() -> list[str]:
    return [
        f"csi-recovery: {__version__}",
        f"Python Version: {platform.python_version()}",
        f"Implementation: {platform.python_implementation()}",
        f"Platform: {platform.system().lower()}/{platform.machine()}",
    ]


def _fatal(logger: logging.Logger, msg: str, exc: Optional[BaseException] = None) -> None:
    logger.error("%s error=%s", msg, exc)
    raise typer.Exit(code=EXIT_FATAL)


def install_shutdown_handlers(cancel: threading.Event, logger: logging.Logger) -> None:
    """SIGINT/SIGTERM set *cancel*; an in-flight bounce still reverts."""

    def _handler(signum, frame):
        logger.warning("received %s, shutting down", signal.Signals(signum).name)
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def version():
    """Print version and runtime information."""
    for line in version_lines():
        typer.echo(line)


@app.command()
def run(
    config: Optional[Path] = typer.Option(
        None, "--config", "-f", help="YAML config file (flags override it)"
    ),
    endpoints: Optional[str] = typer.Option(
        None, "--endpoints", help="Comma separated list of CSI endpoints"
    ),
    kubelet_path: Optional[str] = typer.Option(
        None, "--kubelet-path", help="Path to kubelet directory [default: /var/lib/kubelet]"
    ),
    node_name: Optional[str] = typer.Option(
        None, "--node-name", help="Name of the node to remediate"
    ),
    kubeconfig: Optional[str] = typer.Option(
        None, "--kubeconfig", help="Path to kubeconfig file (in-cluster config when unset)"
    ),
    quiesce_timeout: Optional[float] = typer.Option(
        None, "--quiesce-timeout", help="Seconds to wait for a scaled-down workload [default: 120]"
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between replica checks [default: 2]"
    ),
    rpc_timeout: Optional[float] = typer.Option(
        None, "--rpc-timeout", help="Deadline for each CSI RPC in seconds [default: 10]"
    ),
    dedupe_owners: Optional[bool] = typer.Option(
        None, "--dedupe-owners/--no-dedupe-owners",
        help="Bounce each owning controller at most once per run",
    ),
    events_file: Optional[Path] = typer.Option(
        None, "--events-file", help="Append remediation events as JSON lines to this file"
    ),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Also write a full debug log into this directory"
    ),
    fail_on_error: bool = typer.Option(
        False, "--fail-on-error", help="Exit 2 when any volume could not be remediated"
    ),
    debug: bool = typer.Option(
        False, "--debug", "-d", help="Enable debug output on the console"
    ),
):
    """
    Run one remediation pass:
      1) connect to every CSI endpoint and identify its driver
      2) probe driver health
      3) for every claim-backed volume on the node, restart the pod or bounce its owner
    """
    logger, run_id, _ = init_logging(log_dir=log_dir, verbose=debug)
    for line in version_lines():
        logger.info(line)

    cancel = threading.Event()
    install_shutdown_handlers(cancel, logger)

    try:
        cfg = load_config(
            config,
            overrides={
                "endpoints": endpoints,
                "kubelet_path": kubelet_path,
                "node_name": node_name,
                "kubeconfig_path": kubeconfig,
                "quiesce_timeout_seconds": quiesce_timeout,
                "poll_interval_seconds": poll_interval,
                "rpc_timeout_seconds": rpc_timeout,
                "dedupe_owners": dedupe_owners,
            },
        )
    except RecoveryError as exc:
        _fatal(logger, "invalid configuration", exc)

    observers = [LoggerObserver(logger)]
    if events_file:
        observers.append(JsonFileObserver(events_file))
    bus = EventBus(observers=observers)
    run_ctx = new_ctx(node=cfg.node_name, run_id=run_id)

    try:
        cluster = new_cluster_client(cfg.kubeconfig_path, cfg.node_name)
    except Exception as exc:
        _fatal(logger, "failed to create kubernetes client", exc)

    try:
        summary = cluster.get_node_summary()
    except Exception as exc:
        _fatal(logger, "failed to get metrics", exc)
    logger.debug("metrics: %d pods on node %s", len(summary.pods), cfg.node_name)

    try:
        registry = DriverRegistry.open(
            cfg.endpoints,
            connect=functools.partial(open_driver_client, timeout=cfg.rpc_timeout_seconds),
        )
    except Exception as exc:
        _fatal(logger, "failed to discover CSI drivers", exc)

    with registry:
        bus.emit(DriversDiscovered(drivers=registry.names(), **run_ctx))
        check_driver_health(registry, bus=bus, run_ctx=run_ctx)

        controller = RemediationController(
            cluster=cluster,
            registry=registry,
            bouncer=WorkloadBouncer(
                cluster,
                quiesce_timeout=cfg.quiesce_timeout_seconds,
                poll_interval=cfg.poll_interval_seconds,
            ),
            bus=bus,
            run_ctx=run_ctx,
            dedupe_owners=cfg.dedupe_owners,
            owner_max_depth=cfg.owner_chain_max_depth,
        )
        report = controller.run(summary.volume_metrics(), cancel=cancel)

    typer.echo(report.summary())
    if fail_on_error and report.failed:
        raise typer.Exit(code=EXIT_VOLUME_FAILURES)


def main() -> None:
    app()
