# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/csi_recovery/config/loader.py

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from csi_recovery.errors import ConfigError
from .models import RecoveryConfig

log = logging.getLogger("csi_recovery")

ENV_PREFIX = "CSI_RECOVERY_"


def _merge(base: dict, override: Mapping[str, Any]) -> dict:
    """
    Merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if value not in (None, ""):
            base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _from_environ(environ: Mapping[str, str]) -> Dict[str, str]:
    """
    Pick up CSI_RECOVERY_<FIELD> variables, e.g. CSI_RECOVERY_NODE_NAME.
    Unknown names are ignored.
    """
    fields = set(RecoveryConfig.model_fields)
    found: Dict[str, str] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in fields:
            found[name] = value
    return found


def load_config(
    path: Optional[str | Path] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RecoveryConfig:
    """
    Build and validate the recovery config.

    Precedence, lowest first:
      1. model defaults
      2. the YAML file at *path* (``${ENV_VAR}`` placeholders are expanded)
      3. ``CSI_RECOVERY_*`` environment variables
      4. *overrides* (normally the CLI flags); None/"" values are ignored
    """
    data: dict = {}

    if path is not None:
        path = Path(path)
        log.debug("Loading config from %s", path)
        _merge(data, _load_yaml(path))

    env = _from_environ(os.environ if environ is None else environ)
    if env:
        log.debug("Config overrides from environment: %s", ", ".join(sorted(env)))
        _merge(data, env)

    if overrides:
        _merge(data, overrides)

    try:
        return RecoveryConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"invalid configuration: {problems}") from exc
