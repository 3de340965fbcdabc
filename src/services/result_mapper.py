"""Turn a datapoint into Prometheus samples."""

from __future__ import annotations

from config.settings import Task
from config.templates import CompiledMetric
from helpers.constants import ACCOUNT_NOT_SPECIFIED
from services.models import Datapoint, DimensionSet, Sample


def label_values_for(
    task: Task, metric: CompiledMetric, dimension_set: DimensionSet
) -> tuple[str, ...]:
    """Declared dimension values in order, then task, region and account.

    Selected dimensions the metric does not declare are queried but not
    labeled.
    """
    return dimension_set.values_for(metric.spec.dimensions) + (
        task.name,
        task.region,
        task.account or ACCOUNT_NOT_SPECIFIED,
    )


def map_datapoint(
    datapoint: Datapoint, metric: CompiledMetric, label_values: tuple[str, ...]
) -> list[Sample]:
    """Emit one sample per non-null statistic that has a template."""
    samples: list[Sample] = []
    for statistic, value in datapoint.statistics():
        template = metric.template_for(statistic)
        if template is None:
            continue
        values = label_values + (statistic,) if metric.statistic_label else label_values
        samples.append(
            Sample(
                name=template.name,
                documentation=template.documentation,
                label_names=template.label_names,
                label_values=values,
                value=value,
            )
        )
    return samples
