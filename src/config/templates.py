"""Scrape templates compiled once per configuration load.

A :class:`CompiledMetric` holds everything a scrape needs for one
``MetricSpec`` of one task: the Prometheus label schema, one
:class:`MetricTemplate` per statistic and the precompiled dimension
patterns used during discovery.  Templates are immutable and shared by
every concurrent scrape unit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Pattern

from config.settings import ConfigurationError, MetricSpec, Task
from helpers.constants import APP_LOGGER, TARGET_TOKEN
from helpers.utils import safe_name, to_snake_case

FIXED_LABELS = ("task", "region", "account")
STATISTIC_LABEL = "statistic"


@dataclass(frozen=True)
class MetricTemplate:
    """Prometheus identity of one exported series family."""

    name: str
    documentation: str
    label_names: tuple[str, ...]
    statistic: str | None = None


@dataclass(frozen=True)
class CompiledMetric:
    """A ``MetricSpec`` with its templates and matching patterns."""

    spec: MetricSpec
    label_names: tuple[str, ...]
    templates: dict[str, MetricTemplate]
    patterns: dict[str, Pattern[str]]
    statistic_label: bool = False

    def __hash__(self) -> int:
        return hash((self.spec, self.label_names))

    def template_for(self, statistic: str) -> MetricTemplate | None:
        if self.statistic_label:
            return self.templates.get("") if statistic in self.spec.statistics else None
        return self.templates.get(statistic)

    def pattern_for(self, dimension: str, target: str) -> Pattern[str] | None:
        """Return the match pattern for ``dimension``.

        Explicit literal lists that reference the target token can only be
        compiled once the target is known, so those are built on demand.
        """
        pattern = self.patterns.get(dimension)
        if pattern is not None:
            return pattern
        values = self.spec.dimensions_select.get(dimension)
        if values is None:
            return None
        return literal_pattern(v if v != TARGET_TOKEN else target for v in values)


class TemplateRegistry:
    """Immutable snapshot: a task's metric specs -> ordered compiled metrics."""

    def __init__(
        self, metrics: dict[tuple[MetricSpec, ...], tuple[CompiledMetric, ...]]
    ) -> None:
        self._metrics = dict(metrics)

    def for_task(self, task: Task) -> tuple[CompiledMetric, ...]:
        return self._metrics.get(task.metrics, ())

    def templates(self) -> list[MetricTemplate]:
        seen: dict[str, MetricTemplate] = {}
        for compiled in self._metrics.values():
            for metric in compiled:
                for template in metric.templates.values():
                    seen.setdefault(template.name, template)
        return list(seen.values())

    def __len__(self) -> int:
        return sum(len(m) for m in self._metrics.values())


def literal_pattern(values: Iterable[str]) -> Pattern[str]:
    """``\\b(v1|v2|...)\\b`` over the escaped literal values."""
    alternation = "|".join(re.escape(v) for v in values)
    return re.compile(rf"\b({alternation})\b")


def label_names_for(spec: MetricSpec, statistic_label: bool = False) -> tuple[str, ...]:
    labels = [safe_name(to_snake_case(d)) for d in spec.dimensions]
    labels.extend(FIXED_LABELS)
    if statistic_label:
        labels.append(STATISTIC_LABEL)
    return tuple(labels)


def metric_name_for(spec: MetricSpec, statistic: str | None = None) -> str:
    parts = [to_snake_case(spec.namespace), to_snake_case(spec.name)]
    if statistic:
        parts.append(to_snake_case(statistic))
    return safe_name("_".join(parts))


def compile_metric(spec: MetricSpec, statistic_label: bool = False) -> CompiledMetric:
    """Build the templates and dimension patterns of a single metric spec."""
    label_names = label_names_for(spec, statistic_label)

    if statistic_label:
        templates = {
            "": MetricTemplate(
                name=metric_name_for(spec),
                documentation=spec.name,
                label_names=label_names,
            )
        }
    else:
        templates = {
            statistic: MetricTemplate(
                name=metric_name_for(spec, statistic),
                documentation=spec.name,
                label_names=label_names,
                statistic=statistic,
            )
            for statistic in spec.statistics
        }

    patterns: dict[str, Pattern[str]] = {}
    for dimension, expression in spec.effective_regex().items():
        try:
            patterns[dimension] = re.compile(expression)
        except re.error as exc:
            raise ConfigurationError(
                f"Invalid regex {expression!r} for dimension {dimension} "
                f"of {spec.namespace}/{spec.name}: {exc}"
            ) from exc
    for dimension, values in spec.dimensions_select.items():
        if dimension not in patterns and TARGET_TOKEN not in values:
            patterns[dimension] = literal_pattern(values)

    return CompiledMetric(
        spec=spec,
        label_names=label_names,
        templates=templates,
        patterns=patterns,
        statistic_label=statistic_label,
    )


def build(tasks: Iterable[Task], statistic_label: bool = False) -> TemplateRegistry:
    """Compile every task's metrics into a :class:`TemplateRegistry`.

    Tasks with identical metric lists (e.g. one task expanded per region)
    share one entry.
    """
    compiled: dict[tuple[MetricSpec, ...], tuple[CompiledMetric, ...]] = {}
    for task in tasks:
        if task.metrics in compiled:
            continue
        compiled[task.metrics] = tuple(
            compile_metric(spec, statistic_label) for spec in task.metrics
        )

    registry = TemplateRegistry(compiled)
    APP_LOGGER.debug(
        msg="Templates compiled",
        metrics=len(registry),
        series_families=len(registry.templates()),
    )
    return registry
