"""Query CloudWatch statistics for one dimension set and keep the latest datapoint."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from config.settings import MetricSpec, Task
from helpers.constants import APP_LOGGER
from helpers.utils import now_utc
from services.models import Datapoint, DimensionSet, ScrapeStats
from wrappers.cloudwatch import ProviderError, WrapperCloudWatch


def query_window(spec: MetricSpec, now: datetime) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` = ``[now - delay - range, now - delay]``."""
    end = now - timedelta(seconds=spec.delay_seconds)
    return end - timedelta(seconds=spec.range_seconds), end


def latest_datapoint(datapoints: Iterable[Datapoint]) -> Datapoint | None:
    """Pick the datapoint with the greatest timestamp; the first one wins ties."""
    latest: Datapoint | None = None
    for datapoint in datapoints:
        if latest is None or latest.timestamp < datapoint.timestamp:
            latest = datapoint
    return latest


class StatisticFetcher:
    """Issue GetMetricStatistics calls for a task."""

    def __init__(self, cloudwatch: WrapperCloudWatch, stats: ScrapeStats) -> None:
        self.cloudwatch = cloudwatch
        self.stats = stats

    def fetch(
        self,
        task: Task,
        spec: MetricSpec,
        dimension_set: DimensionSet,
        now: datetime | None = None,
    ) -> Datapoint | None:
        """Return the most recent datapoint, or ``None`` on error / no data.

        Errors are counted on the session and logged; they never propagate.
        """
        start, end = query_window(spec, now or now_utc())
        try:
            raw = self.cloudwatch.get_metric_statistics(
                namespace=spec.namespace,
                metric_name=spec.name,
                dimensions=list(dimension_set.pairs),
                statistics=list(spec.statistics),
                start_time=start,
                end_time=end,
                period=spec.period_seconds,
            )
        except ProviderError as exc:
            self.stats.record_error()
            APP_LOGGER.error(
                msg=str(exc),
                task=task.name,
                region=task.region,
                metric=f"{spec.namespace}/{spec.name}",
                dimensions=dict(dimension_set.pairs),
            )
            return None

        if not raw:
            APP_LOGGER.debug(
                msg="No datapoints",
                task=task.name,
                metric=f"{spec.namespace}/{spec.name}",
                dimensions=dict(dimension_set.pairs),
            )
            return None

        return latest_datapoint(Datapoint.from_response(d) for d in raw)
