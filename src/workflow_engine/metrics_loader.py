"""Metrics manifest loader.

``metrics.yaml`` is optional. It lists named profiles; the engine records
only the metrics the selected profile enables::

    profiles:
      - name: lean
        metrics:
          - name: workflow_total_duration
            type: timer
            tags: {team: build}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .exceptions import ManifestLoadError
from .schemas import MetricConfig, MetricsProfile, MetricType

METRICS_FILE = "metrics.yaml"

# name, type, description
DEFAULT_METRICS = (
    ("task_execution_duration", MetricType.TIMER, "Duration of a successful task run in ms, retries included"),
    ("workflow_total_duration", MetricType.TIMER, "Wall-clock duration of a workflow run in ms"),
    ("task_retry_count", MetricType.COUNTER, "One sample per scheduled retry"),
    ("resource_constraint_count", MetricType.COUNTER, "Memory rejections and CPU advisories"),
    ("process_memory_mb", MetricType.GAUGE, "Process RSS sampled before each attempt"),
)


def load_metrics_manifest(config_dir: str) -> Optional[Dict[str, Any]]:
    """Read ``metrics.yaml`` from ``config_dir``.

    Returns None when the file is absent or empty.

    Raises:
        ManifestLoadError: If the file cannot be read or is not valid YAML.
    """
    path = Path(config_dir) / METRICS_FILE
    if not path.exists():
        return None
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f) or None
    except yaml.YAMLError as e:
        raise ManifestLoadError(METRICS_FILE, f"Invalid YAML: {e}")
    except OSError as e:
        raise ManifestLoadError(METRICS_FILE, str(e))


def _parse_metric(profile_name: Optional[str], data: Mapping[str, Any]) -> MetricConfig:
    name = data.get("name")
    if not name:
        raise ValueError(f"Metric in profile '{profile_name}' is missing a name")
    try:
        metric_type = MetricType(data.get("type"))
    except ValueError:
        raise ValueError(f"Unknown metric type for '{name}': {data.get('type')}")
    return MetricConfig(
        name=name,
        type=metric_type,
        enabled=data.get("enabled", True),
        tags=data.get("tags") or {},
        description=data.get("description", ""),
    )


def parse_metrics(data: Optional[Mapping[str, Any]]) -> List[MetricsProfile]:
    """Turn manifest data into profiles; no ``profiles`` key means the default profile.

    Raises:
        ValueError: If a metric misses its name or declares an unknown type.
    """
    if not data or "profiles" not in data:
        return [get_default_profile()]

    return [
        MetricsProfile(
            name=entry["name"],
            description=entry.get("description", ""),
            enabled=entry.get("enabled", True),
            metrics=[_parse_metric(entry.get("name"), metric) for metric in entry.get("metrics") or []],
        )
        for entry in data["profiles"]
    ]


def select_profile(profiles: List[MetricsProfile], name: Optional[str] = None) -> MetricsProfile:
    """Pick a profile by name, falling back to the first one."""
    if name:
        for profile in profiles:
            if profile.name == name:
                return profile
        raise ValueError(f"Unknown metrics profile: {name}")
    return profiles[0] if profiles else get_default_profile()


def get_default_profile() -> MetricsProfile:
    return MetricsProfile(
        name="default",
        description="Every metric the engine emits",
        metrics=[
            MetricConfig(name=name, type=metric_type, description=description)
            for name, metric_type, description in DEFAULT_METRICS
        ],
    )
