"""Exporter settings: tasks and the CloudWatch metrics they scrape.

The YAML layout mirrors the upstream ``cloudwatch_exporter`` format::

    statistic_label: false
    accounts: ["111111111111"]
    exclude_accounts: []
    tasks:
      - name: ec2
        region: eu-west-1
        account: "111111111111"
        role_name: exporter
        metrics:
          - aws_namespace: AWS/EC2
            aws_metric_name: CPUUtilization
            aws_statistics: [Average]
            aws_dimensions: [InstanceId]
            aws_dimensions_select: {InstanceId: [$_target]}

Every value built here is frozen; a reload builds a brand-new ``Settings``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

import yaml

from helpers.constants import (
    APP_LOGGER,
    DEFAULT_DELAY_SECONDS,
    DEFAULT_PERIOD_SECONDS,
    DEFAULT_RANGE_SECONDS,
    STATISTICS,
    TARGET_TOKEN,
)

ALL = "all"


class ConfigurationError(Exception):
    """Raised for an unusable configuration or an unknown task request."""


@dataclass(frozen=True)
class MetricSpec:
    """One CloudWatch metric to scrape, with its dimension selection rules."""

    namespace: str
    name: str
    statistics: tuple[str, ...]
    dimensions: tuple[str, ...] = ()

    # dimension name -> literal values (may contain the $_target token)
    dimensions_select: dict[str, tuple[str, ...]] = field(default_factory=dict)
    # dimension name -> regular expression
    dimensions_select_regex: dict[str, str] = field(default_factory=dict)

    range_seconds: int = DEFAULT_RANGE_SECONDS
    period_seconds: int = DEFAULT_PERIOD_SECONDS
    delay_seconds: int = DEFAULT_DELAY_SECONDS

    def __hash__(self) -> int:
        return hash((self.namespace, self.name, self.statistics, self.dimensions))

    def effective_regex(self) -> dict[str, str]:
        """Return regex selections with match-all filled in for unselected dimensions."""
        regex = dict(self.dimensions_select_regex)
        for dimension in self.dimensions:
            if dimension not in self.dimensions_select and dimension not in regex:
                regex[dimension] = ".*"
        return regex

    @property
    def needs_discovery(self) -> bool:
        return bool(self.effective_regex())

    @property
    def has_direct_selection(self) -> bool:
        return bool(self.dimensions_select) or not self.dimensions

    @property
    def uses_target(self) -> bool:
        return any(TARGET_TOKEN in values for values in self.dimensions_select.values())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetricSpec:
        try:
            namespace = data["aws_namespace"]
            name = data["aws_metric_name"]
        except KeyError as exc:
            raise ConfigurationError(f"Metric is missing required key {exc}") from exc

        statistics = tuple(data.get("aws_statistics") or ())
        if not statistics:
            raise ConfigurationError(f"Metric {namespace}/{name} has no aws_statistics")
        unknown = [s for s in statistics if s not in STATISTICS]
        if unknown:
            raise ConfigurationError(
                f"Metric {namespace}/{name} has unknown statistics {unknown}. "
                f"Valid statistics: {list(STATISTICS)}"
            )

        select = {
            str(dim): tuple(str(v) for v in _as_list(values))
            for dim, values in (data.get("aws_dimensions_select") or {}).items()
        }
        select_regex = {
            str(dim): str(pattern)
            for dim, pattern in (data.get("aws_dimensions_select_regex") or {}).items()
        }

        spec = cls(
            namespace=str(namespace),
            name=str(name),
            statistics=statistics,
            dimensions=tuple(str(d) for d in data.get("aws_dimensions") or ()),
            dimensions_select=select,
            dimensions_select_regex=select_regex,
            range_seconds=_seconds(data, "range_seconds", DEFAULT_RANGE_SECONDS),
            period_seconds=_seconds(data, "period_seconds", DEFAULT_PERIOD_SECONDS),
            delay_seconds=_seconds(data, "delay_seconds", DEFAULT_DELAY_SECONDS),
        )
        for seconds in (spec.range_seconds, spec.period_seconds):
            if seconds <= 0:
                raise ConfigurationError(
                    f"Metric {namespace}/{name}: range/period must be positive"
                )
        if spec.delay_seconds < 0:
            raise ConfigurationError(
                f"Metric {namespace}/{name}: delay_seconds must not be negative"
            )
        return spec


@dataclass(frozen=True)
class Task:
    """A named scrape unit bound to one region and one account."""

    name: str
    metrics: tuple[MetricSpec, ...]
    region: str = ""
    account: str = ""
    role_name: str = ""

    @property
    def role_arn(self) -> str | None:
        if self.account and self.role_name:
            return f"arn:aws:iam::{self.account}:role/{self.role_name}"
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        name = data.get("name")
        if not name:
            raise ConfigurationError("Task is missing required key 'name'")
        metrics = data.get("metrics") or []
        if not metrics:
            raise ConfigurationError(f"Task '{name}' has no metrics")
        return cls(
            name=str(name),
            metrics=tuple(MetricSpec.from_dict(m) for m in metrics),
            region=str(data.get("region") or ""),
            account=str(data.get("account") or ""),
            role_name=str(data.get("role_name") or ""),
        )


@dataclass(frozen=True)
class Settings:
    """Top-level settings: the full list of tasks plus account directives."""

    tasks: tuple[Task, ...]
    accounts: tuple[str, ...] = ()
    exclude_accounts: tuple[str, ...] = ()
    statistic_label: bool = False

    def get_tasks(self, name: str) -> list[Task]:
        """Return every task with the given name."""
        tasks = [task for task in self.tasks if task.name == name]
        if not tasks:
            raise ConfigurationError(f"can't find task '{name}' in configuration")
        return tasks

    @property
    def task_names(self) -> list[str]:
        return list(dict.fromkeys(task.name for task in self.tasks))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        tasks = data.get("tasks") or []
        if not tasks:
            raise ConfigurationError("Configuration defines no tasks")
        return cls(
            tasks=tuple(Task.from_dict(t) for t in tasks),
            accounts=tuple(str(a) for a in data.get("accounts") or ()),
            exclude_accounts=tuple(str(a) for a in data.get("exclude_accounts") or ()),
            statistic_label=bool(data.get("statistic_label", False)),
        )

    def expand(
        self,
        list_regions: Callable[[], Iterable[str]],
        list_accounts: Callable[[], Iterable[str]],
    ) -> Settings:
        """Replace ``all`` regions/accounts by one task per concrete value.

        ``list_regions`` / ``list_accounts`` are only called when a task
        actually asks for ``all``, and at most once each.
        """
        regions: list[str] | None = None
        accounts: list[str] | None = None
        expanded: list[Task] = []

        for task in self.tasks:
            task_accounts = [task.account]
            if task.account.lower() == ALL:
                if accounts is None:
                    source = self.accounts or tuple(list_accounts())
                    accounts = [a for a in source if a not in self.exclude_accounts]
                    APP_LOGGER.info(msg="Expanded 'all' accounts", accounts=accounts)
                task_accounts = accounts

            task_regions = [task.region]
            if task.region.lower() == ALL:
                if regions is None:
                    regions = list(list_regions())
                    APP_LOGGER.info(msg="Expanded 'all' regions", regions=regions)
                task_regions = regions

            for account in task_accounts:
                for region in task_regions:
                    expanded.append(replace(task, account=account, region=region))

        return replace(self, tasks=tuple(expanded))


def _seconds(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def load(
    filename: str,
    list_regions: Callable[[], Iterable[str]] | None = None,
    list_accounts: Callable[[], Iterable[str]] | None = None,
) -> Settings:
    """Load and validate settings from a YAML file, expanding ``all`` directives."""
    try:
        with open(filename, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read configuration {filename}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {filename}: {exc}") from exc

    settings = Settings.from_dict(data)
    if list_regions is not None and list_accounts is not None:
        settings = settings.expand(list_regions, list_accounts)

    APP_LOGGER.info(
        msg=f"Configuration loaded from {filename}",
        tasks=len(settings.tasks),
        task_names=settings.task_names,
    )
    return settings
