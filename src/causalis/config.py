"""Engine configuration with Pydantic validation.

Configuration can be built in code or loaded from a YAML or JSON file:

    config = load_config(Path("causalis.yaml"))
    graph = CausaloidGraph(config=config)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from causalis.errors import ConfigurationError

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Causal engine configuration.

    Attributes:
        parallel_evaluation: Evaluate children of count-based aggregations
            on a thread pool (fork-join)
        max_workers: Thread pool size for parallel evaluation (1-32)
        record_audit_log: Keep per-unit evaluation entries in effect logs
        explain_max_entries: Maximum log entries rendered by explain()
    """

    parallel_evaluation: bool = Field(
        default=False,
        description="Fork-join evaluation of NONE/THRESHOLD children",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Worker threads for parallel evaluation",
    )
    record_audit_log: bool = Field(
        default=True,
        description="Record evaluation entries in effect logs",
    )
    explain_max_entries: int = Field(
        default=500,
        ge=1,
        le=10000,
        description="Maximum log entries rendered by explain()",
    )

    model_config = {"frozen": True, "extra": "forbid"}


DEFAULT_CONFIG = EngineConfig()


def _format_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )


def build_config(data: Optional[Dict[str, Any]] = None) -> EngineConfig:
    """Validate a raw mapping into an EngineConfig.

    Raises:
        ConfigurationError: If any value is invalid
    """
    try:
        return EngineConfig(**(data or {}))
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {_format_validation_error(exc)}"
        ) from exc


def load_config(path: Path) -> EngineConfig:
    """Load and validate configuration from a YAML or JSON file.

    A missing file yields the default configuration.

    Args:
        path: Path to a ``.yaml``/``.yml`` or ``.json`` file

    Returns:
        Validated engine configuration

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid
    """
    path = Path(path).expanduser()
    if not path.exists():
        logger.debug("Config file not found, using defaults", extra={"config_path": str(path)})
        return DEFAULT_CONFIG

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot parse configuration file {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    config = build_config(data)
    logger.info("Loaded engine configuration", extra={"config_path": str(path)})
    return config


def save_config(config: EngineConfig, path: Path) -> None:
    """Write configuration as YAML."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)
