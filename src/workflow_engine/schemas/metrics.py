"""Metrics schema definitions."""

from dataclasses import dataclass, field
from typing import Dict, List
from enum import Enum


class MetricType(str, Enum):
    """Types of metrics that can be collected."""
    TIMER = "timer"  # Duration in milliseconds
    COUNTER = "counter"
    GAUGE = "gauge"  # Point-in-time value


@dataclass
class MetricConfig:
    """Configuration for a single metric."""
    name: str  # e.g. "task_execution_duration"
    type: MetricType
    enabled: bool = True
    tags: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class MetricsProfile:
    """Collection of metric configurations."""
    name: str
    description: str = ""
    metrics: List[MetricConfig] = field(default_factory=list)
    enabled: bool = True


@dataclass
class MetricSample:
    """Single metric sample."""
    metric_name: str
    metric_type: MetricType
    value: float
    timestamp: str  # ISO-8601
    tags: Dict[str, str] = field(default_factory=dict)  # workflow_id, task_id, ...
    metadata: Dict[str, str] = field(default_factory=dict)
