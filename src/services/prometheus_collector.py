"""Expose a scrape session through ``prometheus_client``."""

from __future__ import annotations

from typing import Iterator

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, Metric

from services.scrape_orchestrator import ScrapeSession


class ScrapeCollector:
    """Custom collector: every ``collect()`` runs the session once."""

    def __init__(self, session: ScrapeSession) -> None:
        self.session = session

    def collect(self) -> Iterator[Metric]:
        families: dict[str, GaugeMetricFamily] = {}
        for sample in self.session.run():
            family = families.get(sample.name)
            if family is None:
                family = GaugeMetricFamily(
                    sample.name, sample.documentation, labels=list(sample.label_names)
                )
                families[sample.name] = family
            family.add_metric(list(sample.label_values), sample.value)

        yield from families.values()
        yield GaugeMetricFamily(
            "cloudwatch_exporter_scrape_duration_seconds",
            "Time this CloudWatch scrape took, in seconds.",
            value=self.session.stats.duration_seconds,
        )
        yield GaugeMetricFamily(
            "cloudwatch_exporter_erroneous_requests",
            "The number of erroneous request made by this scrape.",
            value=self.session.stats.erroneous_requests,
        )


def render(session: ScrapeSession) -> bytes:
    """Run ``session`` and return the Prometheus text exposition."""
    registry = CollectorRegistry()
    registry.register(ScrapeCollector(session))
    return generate_latest(registry)
