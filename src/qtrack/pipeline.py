"""
qtrack.pipeline - Assemble the ingestion and metrics components.

``build_pipeline`` is the one place that reads configuration and connects
the parser, reconciler, webhook processor and quality gate refresher
around a data store. The Flask app and the CLI commands both go through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from qtrack.config import DEFAULT_CONFIG, merge_configs, validate_config
from qtrack.metrics.coverage import calculate_coverage
from qtrack.metrics.gates import QualityGateRefresher, refresh_quality_gates
from qtrack.metrics.release import HealthWeights, calculate_release_metrics
from qtrack.models import ReleaseMetrics, RequirementCoverageStat, Version
from qtrack.parsers.junit_xml import JUnitXMLParser
from qtrack.reconcile import TestCaseReconciler
from qtrack.store.datastore import DataStore, InMemoryDataStore
from qtrack.store.events import EventChannel
from qtrack.webhook.processor import WebhookProcessor


@dataclass
class Pipeline:
    """Configured components sharing one store and one event channel."""

    store: DataStore
    config: dict[str, Any]
    events: EventChannel
    parser: JUnitXMLParser
    reconciler: TestCaseReconciler
    processor: WebhookProcessor
    weights: HealthWeights
    refresher: Optional[QualityGateRefresher] = None

    @property
    def zero_minimum_ratio(self) -> int:
        return int(self.config["coverage"]["zero_minimum_ratio"])

    def coverage(self, version: Optional[str] = None) -> list[RequirementCoverageStat]:
        return calculate_coverage(
            self.store.get_requirements(),
            self.store.get_mapping(),
            self.store.get_test_cases(),
            version,
            zero_minimum_ratio=self.zero_minimum_ratio,
        )

    def release_metrics(self, version_id: str) -> ReleaseMetrics | None:
        health = self.config["health"]
        return calculate_release_metrics(
            version_id,
            self.store.get_versions(),
            self.store.get_requirements(),
            self.store.get_test_cases(),
            self.store.get_mapping(),
            weights=self.weights,
            risk_min_impact=int(health["risk_min_impact"]),
            risk_limit=int(health["risk_limit"]),
            zero_minimum_ratio=self.zero_minimum_ratio,
        )

    def refresh_gates(self) -> list[Version] | None:
        return refresh_quality_gates(self.store, zero_minimum_ratio=self.zero_minimum_ratio)


def build_pipeline(
    store: DataStore | None = None,
    config: dict[str, Any] | None = None,
) -> Pipeline:
    """Create a pipeline around ``store`` using ``config`` merged over defaults.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    merged = merge_configs(DEFAULT_CONFIG, config or {})
    validate_config(merged)

    store = store if store is not None else InMemoryDataStore()
    events = EventChannel()
    webhook = merged["webhook"]
    parser = JUnitXMLParser(
        max_bytes=int(webhook["max_xml_bytes"]), framework=str(webhook["framework"])
    )
    reconciler = TestCaseReconciler(store, events)
    processor = WebhookProcessor(reconciler, parser=parser, events=events)

    refresher = None
    if merged["gates"]["refresh_on_commit"]:
        refresher = QualityGateRefresher(
            store, zero_minimum_ratio=int(merged["coverage"]["zero_minimum_ratio"])
        ).attach(events)

    return Pipeline(
        store=store,
        config=merged,
        events=events,
        parser=parser,
        reconciler=reconciler,
        processor=processor,
        weights=HealthWeights.from_config(merged),
        refresher=refresher,
    )
