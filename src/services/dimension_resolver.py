"""Resolve the concrete dimension sets to query for one metric.

Two paths feed a scrape:

* **direct** – ``aws_dimensions_select`` values are used as-is (after
  replacing the ``$_target`` token), without calling CloudWatch.
* **discovery** – ``ListMetrics`` is paged through and every returned
  combination whose declared dimensions all match their pattern becomes a
  dimension set.  Duplicates within one resolve call are dropped.
"""

from __future__ import annotations

from typing import Iterator

from config.settings import Task
from config.templates import CompiledMetric
from helpers.constants import APP_LOGGER, DISCOVERY_PAGE_ATTEMPTS, TARGET_TOKEN
from services.models import DimensionSet, ScrapeStats
from wrappers.cloudwatch import ProviderError, WrapperCloudWatch


class DimensionResolver:
    """Produce the dimension sets of a metric for one task's scrape."""

    def __init__(
        self,
        cloudwatch: WrapperCloudWatch,
        stats: ScrapeStats,
        page_attempts: int = DISCOVERY_PAGE_ATTEMPTS,
    ) -> None:
        self.cloudwatch = cloudwatch
        self.stats = stats
        self.page_attempts = max(1, page_attempts)

    def resolve(
        self, task: Task, metric: CompiledMetric, target: str
    ) -> Iterator[DimensionSet]:
        """Yield the direct set (if any) first, then each discovered set."""
        direct = self.direct_dimension_set(metric, target)
        if direct is not None:
            yield direct

        if metric.spec.needs_discovery:
            yield from self.discover(task, metric, target)

    # ── direct path ───────────────────────────────────────────────────────

    def direct_dimension_set(
        self, metric: CompiledMetric, target: str
    ) -> DimensionSet | None:
        """Build the set from explicit selections.

        Multi-valued selections are folded into the one set, each value
        contributing its own ``(name, value)`` pair.
        """
        spec = metric.spec
        if not spec.has_direct_selection:
            return None

        ordered = [d for d in spec.dimensions if d in spec.dimensions_select]
        ordered += [d for d in spec.dimensions_select if d not in spec.dimensions]

        pairs = tuple(
            (dimension, target if value == TARGET_TOKEN else value)
            for dimension in ordered
            for value in spec.dimensions_select[dimension]
        )
        return DimensionSet(pairs=pairs, discovered=False)

    # ── discovery path ────────────────────────────────────────────────────

    def discover(
        self, task: Task, metric: CompiledMetric, target: str
    ) -> Iterator[DimensionSet]:
        """Yield every distinct matching combination reported by ListMetrics."""
        combinations = self.list_combinations(task, metric)
        if combinations is None:
            return

        declared = metric.spec.dimensions
        patterns = {d: metric.pattern_for(d, target) for d in declared}
        seen: set[tuple[str, ...]] = set()

        for combination in combinations:
            if not self._matches(combination, declared, patterns):
                continue

            dimension_set = DimensionSet(
                pairs=tuple((d, combination[d]) for d in declared),
                discovered=True,
            )
            if dimension_set.key in seen:
                continue
            seen.add(dimension_set.key)
            yield dimension_set

        APP_LOGGER.debug(
            msg=f"Discovered {len(seen)} dimension sets",
            task=task.name,
            metric=f"{metric.spec.namespace}/{metric.spec.name}",
            candidates=len(combinations),
        )

    def list_combinations(
        self, task: Task, metric: CompiledMetric
    ) -> list[dict[str, str]] | None:
        """Page through ListMetrics and return every combination found.

        Returns ``None`` when the first page fails.  A failed later page is
        retried with the same token, up to ``page_attempts`` times in a row.
        """
        spec = metric.spec
        try:
            combinations, next_token = self.cloudwatch.list_metrics_page(
                spec.namespace, spec.name
            )
        except ProviderError as exc:
            self.stats.record_error()
            APP_LOGGER.error(
                msg=f"Discovery aborted: {exc}",
                task=task.name,
                metric=f"{spec.namespace}/{spec.name}",
            )
            return None

        failures = 0
        while next_token:
            try:
                page, token = self.cloudwatch.list_metrics_page(
                    spec.namespace, spec.name, next_token
                )
            except ProviderError as exc:
                self.stats.record_error()
                failures += 1
                APP_LOGGER.error(
                    msg=f"Discovery page failed: {exc}",
                    task=task.name,
                    metric=f"{spec.namespace}/{spec.name}",
                    attempt=failures,
                )
                if failures >= self.page_attempts:
                    break
                continue
            failures = 0
            combinations.extend(page)
            next_token = token

        return combinations

    @staticmethod
    def _matches(combination, declared, patterns) -> bool:
        if set(combination) - set(declared):
            return False
        for dimension in declared:
            value = combination.get(dimension)
            pattern = patterns.get(dimension)
            if value is None or pattern is None or not pattern.search(value):
                return False
        return True
