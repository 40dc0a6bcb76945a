"""Execution strategy manifest loader.

Loads optional strategy.yaml configuration and applies environment overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError as SchemaError

from .exceptions import ManifestLoadError
from .schemas import ExecutionMode, ExecutionStrategy

ENV_MODE = "WORKFLOW_ENGINE_MODE"
ENV_MAX_CONCURRENCY = "WORKFLOW_ENGINE_MAX_CONCURRENCY"
ENV_DEFAULT_TIMEOUT_MS = "WORKFLOW_ENGINE_DEFAULT_TIMEOUT_MS"


def load_strategy_manifest(config_dir: str) -> Optional[Dict[str, Any]]:
    """Load optional strategy.yaml manifest.

    - File is optional
    - If missing, the default strategy is used
    - Returns None if file doesn't exist

    Args:
        config_dir: Path to config directory

    Returns:
        Parsed YAML as dict, or None if file not found

    Raises:
        ManifestLoadError: If the file cannot be read or is not valid YAML
    """
    strategy_path = Path(config_dir) / "strategy.yaml"

    if not strategy_path.exists():
        return None

    try:
        with open(strategy_path, 'r') as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ManifestLoadError("strategy.yaml", f"Invalid YAML: {e}")
    except OSError as e:
        raise ManifestLoadError("strategy.yaml", str(e))


def parse_strategy(data: Optional[Dict[str, Any]]) -> ExecutionStrategy:
    """Parse strategy configuration from manifest data.

    Expected format::

        strategy:
          mode: adaptive
          max_concurrency: 4
          default_timeout_ms: 30000
          retry:
            max_attempts: 3
            backoff_multiplier: 2
            initial_delay_ms: 1000
            max_delay_ms: 30000
          resource_limits:
            max_memory_mb: 512
          failure_handling:
            stop_on_critical_failure: true

    Omitted fields keep their defaults.

    Raises:
        ValueError: If configuration is invalid
    """
    if not data or 'strategy' not in data:
        return get_default_strategy()

    strategy_cfg = data['strategy'] or {}
    if not isinstance(strategy_cfg, dict):
        raise ValueError("strategy must be a mapping")

    mode = strategy_cfg.get('mode')
    if mode is not None:
        try:
            ExecutionMode(mode)
        except ValueError:
            raise ValueError(f"Unknown execution mode: {mode}")

    try:
        return ExecutionStrategy.model_validate(strategy_cfg)
    except SchemaError as e:
        raise ValueError(f"Invalid strategy configuration: {e}")


def apply_env_overrides(
    strategy: ExecutionStrategy,
    environ: Optional[Mapping[str, str]] = None,
) -> ExecutionStrategy:
    """Apply WORKFLOW_ENGINE_* environment overrides to a strategy.

    Raises:
        ValueError: If an override cannot be parsed
    """
    env = os.environ if environ is None else environ
    updates: Dict[str, Any] = {}

    if env.get(ENV_MODE):
        try:
            updates["mode"] = ExecutionMode(env[ENV_MODE].strip().lower())
        except ValueError:
            raise ValueError(f"Unknown execution mode in {ENV_MODE}: {env[ENV_MODE]}")

    if env.get(ENV_MAX_CONCURRENCY):
        updates["max_concurrency"] = env[ENV_MAX_CONCURRENCY]

    if env.get(ENV_DEFAULT_TIMEOUT_MS):
        updates["default_timeout_ms"] = env[ENV_DEFAULT_TIMEOUT_MS]

    if not updates:
        return strategy

    try:
        return ExecutionStrategy.model_validate({**strategy.model_dump(), **updates})
    except SchemaError as e:
        raise ValueError(f"Invalid strategy override: {e}")


def load_strategy(config_dir: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> ExecutionStrategy:
    """Load strategy.yaml (if any) from config_dir and apply environment overrides."""
    data = load_strategy_manifest(config_dir) if config_dir else None
    return apply_env_overrides(parse_strategy(data), environ)


def get_default_strategy() -> ExecutionStrategy:
    """Get default execution strategy.

    - Adaptive mode, up to 4 concurrent tasks
    - 30 s per-attempt timeout
    - 3 retries, backoff 1 s doubling up to 30 s
    - 512 MB memory ceiling
    - Abort on critical failure, skip dependents of failed tasks
    """
    return ExecutionStrategy()
