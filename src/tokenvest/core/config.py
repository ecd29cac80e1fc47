"""
tokenvest Configuration

Settings come from three layers, lowest precedence first:
1. Built-in defaults
2. An optional YAML config file
3. ``TOKENVEST_*`` environment variables
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .exceptions import ConfigurationError
from .vesting_math import CliffPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "TOKENVEST_"


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class AdmissionMode(Enum):
    """Which admission strategy the registry is built with."""

    KEYED = "keyed"
    INSTANCES = "instances"


DEFAULT_ESCROW_ACCOUNT = "0xvesting_escrow"
DEFAULT_ASSET = "TOKEN"
DEFAULT_STATE_FILE = os.path.join(os.getcwd(), "data", "tokenvest_state.json")


@dataclass
class VestingSettings:
    """Resolved runtime settings."""

    network: str = NetworkType.TESTNET.value
    cliff_policy: str = CliffPolicy.DELAY.value
    admission_policy: str = AdmissionMode.KEYED.value
    escrow_account: str = DEFAULT_ESCROW_ACCOUNT
    asset: str = DEFAULT_ASSET
    log_dir: str = ""
    log_level: str = "INFO"
    state_file: str = DEFAULT_STATE_FILE

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        try:
            NetworkType(self.network)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown network: {self.network}") from exc
        try:
            CliffPolicy.parse(self.cliff_policy)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        try:
            AdmissionMode(self.admission_policy)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown admission policy: {self.admission_policy}") from exc
        if not self.escrow_account.strip():
            raise ConfigurationError("Escrow account cannot be empty")
        if not self.asset.strip():
            raise ConfigurationError("Asset symbol cannot be empty")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARN", "WARNING", "ERROR", "CRITICAL"}:
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @property
    def cliff(self) -> CliffPolicy:
        return CliffPolicy.parse(self.cliff_policy)

    @property
    def admission(self) -> AdmissionMode:
        return AdmissionMode(self.admission_policy)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _read_yaml_config(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    # Allow either a flat mapping or one nested under "tokenvest"
    section = data.get("tokenvest", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"'tokenvest' section in {path} must be a mapping")
    return section


def load_settings(
    config_file: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VestingSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Args:
        config_file: Path to a YAML file (ignored when None)
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigurationError: On unknown keys or invalid values
    """
    env = os.environ if environ is None else environ
    known = {f.name for f in fields(VestingSettings)}
    values: Dict[str, Any] = {}

    if config_file:
        file_values = _read_yaml_config(Path(config_file))
        unknown = set(file_values) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        # A null entry keeps the field default
        values.update(
            {key: str(value) for key, value in file_values.items() if value is not None}
        )

    for name in known:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}", "").strip()
        if raw:
            values[name] = raw

    settings = VestingSettings(**values)
    logger.debug(
        "Settings loaded",
        extra={"event": "config.loaded", "config_file": str(config_file or ""), **settings.to_dict()},
    )
    return settings
