"""Unified configuration for belief-mesh.

BeliefMeshConfig provides a clean way to configure all components:
- Propagation (mode, timeout, acceptance threshold)
- Neighbor synchronization (interval, timeout, auto sync)
- Consistency management (thresholds, plan sizing)

Configuration can come from code, from environment variables, or from a
belief_mesh.yaml file:

    propagation:
      mode: sync
      timeout: 2.5
      acceptance_threshold: 0.6

    sync:
      interval: 5.0
      auto_sync: true

    consistency:
      convergence_threshold: 0.95
      batch_size: 10
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default config file names to search for
DEFAULT_CONFIG_FILES = [
    "belief_mesh.yaml",
    "belief_mesh.yml",
    ".belief_mesh.yaml",
    ".belief_mesh.yml",
]

STRATEGY_NAMES = ("highest_confidence", "newest", "probabilistic", "authority", "merge")


@dataclass
class PropagationConfig:
    """Configuration for belief propagation between agents."""

    mode: Literal["async", "sync"] = "async"
    timeout: float = 5.0  # Seconds to wait for an acknowledgement (sync mode)
    acceptance_threshold: float = 0.5
    conflict_strategy: str = "highest_confidence"


@dataclass
class SyncConfig:
    """Configuration for periodic neighbor synchronization."""

    interval: float = 5.0  # Seconds between automatic syncs
    timeout: float = 5.0  # Seconds to wait for a neighbor's belief set
    auto_sync: bool = True


@dataclass
class ConsistencyConfig:
    """Configuration for consistency management."""

    convergence_threshold: float = 0.95
    partition_threshold: float = 0.3
    consistency_threshold: float = 0.9
    alignment_threshold: float = 0.8
    confidence_threshold: float = 0.5

    # Plan sizing (seconds)
    max_time: float = 60.0
    sync_interval: float = 1.0
    batch_size: int = 10

    # Alignment plans (seconds)
    alignment_max_time: float = 30.0


@dataclass
class BeliefMeshConfig:
    """Main configuration for belief-mesh.

    Create from environment variables:
        config = BeliefMeshConfig.from_env()

    Or from a YAML file:
        config = load_config("belief_mesh.yaml")

    Or specify directly:
        config = BeliefMeshConfig(
            propagation=PropagationConfig(mode="sync", timeout=1.0),
        )
    """

    propagation: PropagationConfig = field(default_factory=PropagationConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    consistency: ConsistencyConfig = field(default_factory=ConsistencyConfig)
    source_path: Path | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if self.propagation.mode not in ("async", "sync"):
            raise ConfigurationError(
                f"propagation.mode must be 'async' or 'sync', got {self.propagation.mode!r}"
            )
        if self.propagation.conflict_strategy not in STRATEGY_NAMES:
            raise ConfigurationError(
                f"Unknown conflict strategy: {self.propagation.conflict_strategy!r}"
            )
        for name, value in (
            ("propagation.acceptance_threshold", self.propagation.acceptance_threshold),
            ("consistency.convergence_threshold", self.consistency.convergence_threshold),
            ("consistency.partition_threshold", self.consistency.partition_threshold),
            ("consistency.consistency_threshold", self.consistency.consistency_threshold),
            ("consistency.alignment_threshold", self.consistency.alignment_threshold),
            ("consistency.confidence_threshold", self.consistency.confidence_threshold),
        ):
            if not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be 0-1, got {value}")
        for name, value in (
            ("propagation.timeout", self.propagation.timeout),
            ("sync.interval", self.sync.interval),
            ("sync.timeout", self.sync.timeout),
            ("consistency.max_time", self.consistency.max_time),
            ("consistency.sync_interval", self.consistency.sync_interval),
            ("consistency.alignment_max_time", self.consistency.alignment_max_time),
        ):
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.consistency.batch_size < 1:
            raise ConfigurationError(
                f"consistency.batch_size must be >= 1, got {self.consistency.batch_size}"
            )

    @classmethod
    def from_env(cls) -> "BeliefMeshConfig":
        """Load configuration from environment variables.

        Environment variables:
        - BELIEF_MESH_PROPAGATION_MODE: async, sync
        - BELIEF_MESH_PROPAGATION_TIMEOUT: Seconds to wait for acks
        - BELIEF_MESH_ACCEPTANCE_THRESHOLD: Minimum confidence for new beliefs
        - BELIEF_MESH_CONFLICT_STRATEGY: highest_confidence, newest, ...
        - BELIEF_MESH_SYNC_INTERVAL: Seconds between neighbor syncs
        - BELIEF_MESH_SYNC_TIMEOUT: Seconds to wait for a neighbor
        - BELIEF_MESH_AUTO_SYNC: true/false
        - BELIEF_MESH_CONVERGENCE_THRESHOLD: Convergence target (0-1)
        - BELIEF_MESH_BATCH_SIZE: Agents per synchronization batch
        - BELIEF_MESH_MAX_TIME: Plan time budget in seconds
        """
        try:
            return cls(
                propagation=PropagationConfig(
                    mode=os.getenv("BELIEF_MESH_PROPAGATION_MODE", "async"),  # type: ignore
                    timeout=float(os.getenv("BELIEF_MESH_PROPAGATION_TIMEOUT", "5.0")),
                    acceptance_threshold=float(
                        os.getenv("BELIEF_MESH_ACCEPTANCE_THRESHOLD", "0.5")
                    ),
                    conflict_strategy=os.getenv(
                        "BELIEF_MESH_CONFLICT_STRATEGY", "highest_confidence"
                    ),
                ),
                sync=SyncConfig(
                    interval=float(os.getenv("BELIEF_MESH_SYNC_INTERVAL", "5.0")),
                    timeout=float(os.getenv("BELIEF_MESH_SYNC_TIMEOUT", "5.0")),
                    auto_sync=os.getenv("BELIEF_MESH_AUTO_SYNC", "true").lower() == "true",
                ),
                consistency=ConsistencyConfig(
                    convergence_threshold=float(
                        os.getenv("BELIEF_MESH_CONVERGENCE_THRESHOLD", "0.95")
                    ),
                    batch_size=int(os.getenv("BELIEF_MESH_BATCH_SIZE", "10")),
                    max_time=float(os.getenv("BELIEF_MESH_MAX_TIME", "60.0")),
                ),
            )
        except ValueError as e:
            raise ConfigurationError("Invalid numeric environment variable", cause=e) from e

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_path: Path | None = None) -> "BeliefMeshConfig":
        """Build a configuration from a parsed mapping (e.g. YAML).

        Raises:
            ConfigurationError: On unknown sections or keys
        """
        sections = {
            "propagation": PropagationConfig,
            "sync": SyncConfig,
            "consistency": ConsistencyConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Config section '{name}' must be a mapping")
            allowed = {f.name for f in fields(section_cls)}
            bad = set(values) - allowed
            if bad:
                raise ConfigurationError(f"Unknown keys in '{name}': {sorted(bad)}")
            kwargs[name] = section_cls(**values)

        return cls(**kwargs, source_path=source_path)

    @classmethod
    def default(cls) -> "BeliefMeshConfig":
        """Create a default configuration (same as no-arg constructor)."""
        return cls()


def load_config(path: Path | str | None = None) -> BeliefMeshConfig:
    """Load configuration from a YAML file.

    If no path is provided, searches for default config files in the
    current directory and parent directories.

    Args:
        path: Optional path to config file.

    Returns:
        Loaded configuration (defaults if no file is found).

    Raises:
        ConfigurationError: If the file cannot be parsed or has invalid values
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            logger.warning(f"Config file not found: {path}")
            return BeliefMeshConfig()
    else:
        config_path = _find_config_file()
        if config_path is None:
            logger.debug("No config file found, using defaults")
            return BeliefMeshConfig()

    return _load_yaml_config(config_path)


def _find_config_file() -> Path | None:
    """Search for a config file in current and parent directories."""
    current = Path.cwd()

    # Search up to 5 levels up
    for _ in range(5):
        for filename in DEFAULT_CONFIG_FILES:
            config_path = current / filename
            if config_path.exists():
                logger.debug(f"Found config file: {config_path}")
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _load_yaml_config(path: Path) -> BeliefMeshConfig:
    """Load and parse a YAML config file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config file {path}", cause=e) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    config = BeliefMeshConfig.from_dict(data, source_path=path)
    logger.info(f"Loaded belief-mesh config from {path}")
    return config
