"""Core scrape orchestrator.

This module ties together, for every task of a scrape session:
  • DimensionResolver  – which dimension sets to query
  • StatisticFetcher   – one GetMetricStatistics call per dimension set
  • ResultMapper       – datapoint -> labeled samples

Tasks run concurrently, one thread each.  Inside a task, metrics are
handled in order; the direct dimension set is queried inline and the
discovered ones are fanned out to a worker pool bounded by
``MAX_CONCURRENT_REQUESTS``.  A task moves to its next metric only once
every discovered set of the current metric has been queried.
"""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator

from config.settings import ConfigurationError, Settings, Task
from config.templates import CompiledMetric, TemplateRegistry
from helpers.constants import APP_LOGGER, DISCOVERY_PAGE_ATTEMPTS, MAX_CONCURRENT_REQUESTS
from helpers.utils import now_utc
from services.dimension_resolver import DimensionResolver
from services.models import DimensionSet, Sample, ScrapeStats
from services.result_mapper import label_values_for, map_datapoint
from services.statistic_fetcher import StatisticFetcher
from wrappers.cloudwatch import WrapperCloudWatch

Sink = Callable[[Sample], None]
CloudWatchFactory = Callable[..., WrapperCloudWatch]


class ScrapeOrchestrator:
    """Run every task of a scrape and push the resulting samples to a sink."""

    def __init__(
        self,
        registry: TemplateRegistry,
        target: str,
        stats: ScrapeStats | None = None,
        max_workers: int = MAX_CONCURRENT_REQUESTS,
        page_attempts: int = DISCOVERY_PAGE_ATTEMPTS,
        cloudwatch_factory: CloudWatchFactory = WrapperCloudWatch,
    ) -> None:
        self.registry = registry
        self.target = target
        self.stats = stats or ScrapeStats()
        self.max_workers = max(1, max_workers)
        self.page_attempts = page_attempts
        self.cloudwatch_factory = cloudwatch_factory

    # ── public entry point ────────────────────────────────────────────────

    def scrape(self, tasks: list[Task], sink: Sink) -> None:
        """Scrape every task; returns once all of their work has completed."""
        started = time.monotonic()

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="dimension-set"
        ) as units, ThreadPoolExecutor(
            max_workers=max(1, len(tasks)), thread_name_prefix="task"
        ) as task_pool:
            futures = {
                task_pool.submit(self._scrape_task, task, sink, units): task
                for task in tasks
            }
            for future in as_completed(futures):
                task = futures[future]
                exc = future.exception()
                if exc is not None:
                    self.stats.record_error()
                    APP_LOGGER.error(
                        msg=f"Task scrape failed: {exc}",
                        task=task.name,
                        region=task.region,
                    )

        self.stats.record_duration(time.monotonic() - started)
        APP_LOGGER.debug(
            msg="Scrape complete",
            target=self.target,
            tasks=len(tasks),
            duration_seconds=round(self.stats.duration_seconds, 3),
            erroneous_requests=self.stats.erroneous_requests,
        )

    # ── helpers ────────────────────────────────────────────────────────────

    def _scrape_task(self, task: Task, sink: Sink, units: ThreadPoolExecutor) -> int:
        cloudwatch = self.cloudwatch_factory(task.region, task.role_arn)
        resolver = DimensionResolver(cloudwatch, self.stats, self.page_attempts)
        fetcher = StatisticFetcher(cloudwatch, self.stats)

        emitted = 0
        for metric in self.registry.for_task(task):
            now = now_utc()
            pending: list[Future] = []
            try:
                for dimension_set in resolver.resolve(task, metric, self.target):
                    if dimension_set.discovered:
                        pending.append(
                            units.submit(
                                self._scrape_dimension_set,
                                task, metric, dimension_set, fetcher, sink, now,
                            )
                        )
                    else:
                        emitted += self._scrape_dimension_set(
                            task, metric, dimension_set, fetcher, sink, now
                        )
            finally:
                wait(pending)

            for future in pending:
                exc = future.exception()
                if exc is not None:
                    self.stats.record_error()
                    APP_LOGGER.error(
                        msg=f"Dimension set scrape failed: {exc}",
                        task=task.name,
                        metric=f"{metric.spec.namespace}/{metric.spec.name}",
                    )
                else:
                    emitted += future.result()

        APP_LOGGER.debug(
            msg="Task scraped", task=task.name, region=task.region, samples=emitted
        )
        return emitted

    @staticmethod
    def _scrape_dimension_set(
        task: Task,
        metric: CompiledMetric,
        dimension_set: DimensionSet,
        fetcher: StatisticFetcher,
        sink: Sink,
        now: datetime,
    ) -> int:
        datapoint = fetcher.fetch(task, metric.spec, dimension_set, now)
        if datapoint is None:
            return 0
        samples = map_datapoint(
            datapoint, metric, label_values_for(task, metric, dimension_set)
        )
        for sample in samples:
            sink(sample)
        return len(samples)


_DONE = object()


class ScrapeSession:
    """One scrape request: a target, a task name and an optional region.

    Construction validates the request against the settings snapshot and
    raises :class:`ConfigurationError`; :meth:`run` streams the samples.
    """

    def __init__(
        self,
        target: str,
        task_name: str,
        region: str,
        settings: Settings,
        registry: TemplateRegistry,
        **orchestrator_options,
    ) -> None:
        self.target = target
        self.task_name = task_name
        self.tasks = self._select_tasks(settings, task_name, region)
        if not target and any(s.uses_target for t in self.tasks for s in t.metrics):
            raise ConfigurationError(
                f"Task '{task_name}' selects dimensions by $_target but no target was given"
            )
        self.stats = ScrapeStats()
        self.orchestrator = ScrapeOrchestrator(
            registry, target, self.stats, **orchestrator_options
        )

    @staticmethod
    def _select_tasks(settings: Settings, task_name: str, region: str) -> list[Task]:
        tasks = settings.get_tasks(task_name)
        if region:
            return list(dict.fromkeys(replace(task, region=region) for task in tasks))
        for task in tasks:
            if not task.region:
                raise ConfigurationError(
                    f"No region requested and no default region set for task '{task_name}'"
                )
        return tasks

    def run(self) -> Iterator[Sample]:
        """Scrape in a background thread and yield samples as they arrive."""
        samples: queue.Queue = queue.Queue()
        failure: list[Exception] = []

        def _worker() -> None:
            try:
                self.orchestrator.scrape(self.tasks, samples.put)
            except Exception as exc:  # re-raised in the consumer thread
                failure.append(exc)
            finally:
                samples.put(_DONE)

        worker = threading.Thread(
            target=_worker, name=f"scrape-{self.task_name}", daemon=True
        )
        worker.start()
        while True:
            item = samples.get()
            if item is _DONE:
                break
            yield item
        worker.join()
        if failure:
            raise failure[0]
