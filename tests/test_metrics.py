"""Metrics profile, loader and collector tests."""

import tempfile
from pathlib import Path

import pytest

from workflow_engine.exceptions import ManifestLoadError
from workflow_engine.metrics_loader import (
    get_default_profile,
    load_metrics_manifest,
    parse_metrics,
    select_profile,
)
from workflow_engine.runtime import MetricsCollector
from workflow_engine.schemas import MetricConfig, MetricsProfile, MetricType


class TestMetricsLoader:
    """Test metrics loader functionality."""

    def test_load_metrics_manifest_with_valid_file(self):
        """Test loading metrics manifest from valid YAML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "metrics.yaml").write_text("""
profiles:
  - name: "lean"
    description: "Durations only"
    metrics:
      - name: "task_execution_duration"
        type: "timer"
        tags:
          team: "build"
""")
            data = load_metrics_manifest(tmpdir)
            assert data is not None
            assert len(data["profiles"]) == 1

    def test_load_metrics_manifest_with_missing_file(self):
        """Test loading metrics manifest when file doesn't exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            assert load_metrics_manifest(tmpdir) is None

    def test_load_metrics_manifest_with_invalid_yaml(self):
        """Test invalid YAML raises ManifestLoadError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "metrics.yaml").write_text("profiles: [unclosed\n")
            with pytest.raises(ManifestLoadError) as exc:
                load_metrics_manifest(tmpdir)
            assert exc.value.file_name == "metrics.yaml"

    def test_parse_metrics_with_complete_profile(self):
        """Test parsing complete metrics profile."""
        data = {
            "profiles": [
                {
                    "name": "lean",
                    "enabled": True,
                    "metrics": [
                        {"name": "task_execution_duration", "type": "timer", "tags": {"team": "build"}},
                        {"name": "task_retry_count", "type": "counter", "enabled": False},
                    ],
                }
            ]
        }
        profiles = parse_metrics(data)
        assert len(profiles) == 1
        assert profiles[0].metrics[0].tags == {"team": "build"}
        assert profiles[0].metrics[1].enabled is False

    def test_parse_metrics_unknown_type(self):
        """Test unknown metric types are rejected."""
        data = {"profiles": [{"name": "p", "metrics": [{"name": "m", "type": "histogram"}]}]}
        with pytest.raises(ValueError, match="Unknown metric type"):
            parse_metrics(data)

    def test_parse_metrics_missing_name(self):
        """Test metrics without names are rejected."""
        data = {"profiles": [{"name": "p", "metrics": [{"type": "timer"}]}]}
        with pytest.raises(ValueError, match="missing a name"):
            parse_metrics(data)

    def test_parse_metrics_with_no_data(self):
        """Test parsing metrics with no data returns default."""
        profiles = parse_metrics(None)
        assert [profile.name for profile in profiles] == ["default"]

    def test_select_profile(self):
        """Test selecting profiles by name."""
        profiles = [MetricsProfile(name="a"), MetricsProfile(name="b")]
        assert select_profile(profiles).name == "a"
        assert select_profile(profiles, "b").name == "b"
        with pytest.raises(ValueError, match="Unknown metrics profile"):
            select_profile(profiles, "c")

    def test_get_default_profile(self):
        """Test default profile contains expected metrics."""
        profile = get_default_profile()
        metric_names = {m.name for m in profile.metrics}
        assert metric_names == {
            "task_execution_duration",
            "workflow_total_duration",
            "task_retry_count",
            "resource_constraint_count",
            "process_memory_mb",
        }


class TestMetricsCollector:
    """Test metrics collector functionality."""

    def test_default_profile_used_when_none_given(self):
        """Test collector falls back to the default profile."""
        collector = MetricsCollector()
        assert collector.is_enabled("task_execution_duration")
        assert not collector.is_enabled("unknown_metric")

    def test_disabled_metric_is_not_recorded(self):
        """Test disabled metrics are dropped."""
        profile = MetricsProfile(
            name="test",
            metrics=[MetricConfig(name="task_retry_count", type=MetricType.COUNTER, enabled=False)],
        )
        collector = MetricsCollector(profile)
        collector.record_counter("task_retry_count")
        assert collector.get_samples() == []

    def test_disabled_profile_records_nothing(self):
        """Test a disabled profile disables every metric."""
        profile = MetricsProfile(
            name="off",
            enabled=False,
            metrics=[MetricConfig(name="task_execution_duration", type=MetricType.TIMER)],
        )
        collector = MetricsCollector(profile)
        collector.record_timer("task_execution_duration", 10.0)
        assert collector.get_samples() == []

    def test_config_tags_merge_with_sample_tags(self):
        """Test profile tags are merged into samples."""
        profile = MetricsProfile(
            name="tagged",
            metrics=[MetricConfig(name="task_execution_duration", type=MetricType.TIMER, tags={"team": "build"})],
        )
        collector = MetricsCollector(profile)
        collector.record_timer("task_execution_duration", 12.0, tags={"task_id": "t1"})

        sample = collector.get_samples()[0]
        assert sample.tags == {"team": "build", "task_id": "t1"}
        assert sample.value == 12.0

    def test_get_samples_filters(self):
        """Test sample filtering by name and type."""
        collector = MetricsCollector()
        collector.record_timer("task_execution_duration", 5.0)
        collector.record_counter("task_retry_count", count=3)
        collector.record_gauge("process_memory_mb", 80.0)

        assert len(collector.get_samples()) == 3
        assert [s.value for s in collector.get_samples("task_retry_count")] == [3.0]
        assert [s.metric_name for s in collector.get_samples(metric_type=MetricType.GAUGE)] == ["process_memory_mb"]

    def test_clear(self):
        """Test clearing samples."""
        collector = MetricsCollector()
        collector.record_gauge("process_memory_mb", 80.0)
        collector.clear()
        assert collector.get_samples() == []

    def test_max_samples_keeps_latest(self):
        """Test retention drops the oldest samples first."""
        collector = MetricsCollector(max_samples=2)
        for value in (1.0, 2.0, 3.0):
            collector.record_gauge("process_memory_mb", value)

        assert [s.value for s in collector.get_samples()] == [2.0, 3.0]
