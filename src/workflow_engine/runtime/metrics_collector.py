"""Profile-driven metric sampling for workflow runs.

The active MetricsProfile decides which metric names are recorded; anything
not enabled there is dropped at the call site. Samples are kept in memory,
oldest first, up to ``max_samples``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from workflow_engine.schemas import MetricConfig, MetricSample, MetricType, MetricsProfile

Tags = Optional[Dict[str, str]]


class MetricsCollector:
    """Records timers, counters and gauges named by a metrics profile.

    Args:
        profile: Profile to honour; the built-in default profile when None.
        max_samples: Retention bound. The oldest samples are dropped first;
            None keeps everything.
    """

    def __init__(self, profile: Optional[MetricsProfile] = None, max_samples: Optional[int] = None):
        from workflow_engine.metrics_loader import get_default_profile

        self.profile = profile or get_default_profile()
        self.max_samples = max_samples
        self.samples: List[MetricSample] = []
        self._configs: Dict[str, MetricConfig] = (
            {config.name: config for config in self.profile.metrics if config.enabled}
            if self.profile.enabled
            else {}
        )

    def is_enabled(self, metric_name: str) -> bool:
        return metric_name in self._configs

    def record_timer(self, metric_name: str, duration_ms: float, tags: Tags = None, metadata: Tags = None) -> None:
        self._record(metric_name, MetricType.TIMER, duration_ms, tags, metadata)

    def record_counter(self, metric_name: str, count: int = 1, tags: Tags = None, metadata: Tags = None) -> None:
        self._record(metric_name, MetricType.COUNTER, float(count), tags, metadata)

    def record_gauge(self, metric_name: str, value: float, tags: Tags = None, metadata: Tags = None) -> None:
        self._record(metric_name, MetricType.GAUGE, value, tags, metadata)

    def _record(self, metric_name: str, metric_type: MetricType, value: float, tags: Tags, metadata: Tags) -> None:
        config = self._configs.get(metric_name)
        if config is None:
            return
        # Sample tags win over the profile's static tags.
        self.samples.append(MetricSample(
            metric_name=metric_name,
            metric_type=metric_type,
            value=value,
            timestamp=datetime.now(ZoneInfo("UTC")).isoformat(),
            tags={**config.tags, **(tags or {})},
            metadata=dict(metadata or {}),
        ))
        if self.max_samples is not None and len(self.samples) > self.max_samples:
            del self.samples[: len(self.samples) - self.max_samples]

    def get_samples(
        self,
        metric_name: Optional[str] = None,
        metric_type: Optional[MetricType] = None,
    ) -> List[MetricSample]:
        """Samples in recording order, optionally filtered by name and type."""
        return [
            sample for sample in self.samples
            if (metric_name is None or sample.metric_name == metric_name)
            and (metric_type is None or sample.metric_type == metric_type)
        ]

    def clear(self) -> None:
        self.samples.clear()
