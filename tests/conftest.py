"""Shared pytest fixtures used across all test modules."""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Ensure required env vars are set for test imports
os.environ.setdefault("DEBUG_MODE", "True")
os.environ.setdefault("CONFIG_FILE", "/tmp/cloudwatch_exporter_test_config.yml")
os.environ.setdefault("MAX_CONCURRENT_REQUESTS", "4")
os.environ.setdefault("DISCOVERY_PAGE_ATTEMPTS", "3")
# boto3 must never reach real AWS from the tests
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from config.settings import MetricSpec, Task  # noqa: E402
from config.templates import compile_metric  # noqa: E402
from wrappers.cloudwatch import WrapperCloudWatch  # noqa: E402

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_spec(**overrides) -> MetricSpec:
    """Build a MetricSpec with sensible EC2 defaults."""
    values = {
        "namespace": "AWS/EC2",
        "name": "CPUUtilization",
        "statistics": ("Average",),
        "dimensions": ("InstanceId",),
    }
    values.update(overrides)
    return MetricSpec(**values)


def make_task(*specs: MetricSpec, **overrides) -> Task:
    values = {
        "name": "ec2",
        "metrics": specs or (make_spec(),),
        "region": "eu-west-1",
        "account": "",
    }
    values.update(overrides)
    return Task(**values)


def make_datapoint(minutes_ago: int = 0, **stats) -> dict:
    """A raw GetMetricStatistics datapoint as boto3 returns it."""
    return {"Timestamp": NOW - timedelta(minutes=minutes_ago), "Unit": "Percent", **stats}


@pytest.fixture
def spec() -> MetricSpec:
    return make_spec()


@pytest.fixture
def task(spec) -> Task:
    return make_task(spec)


@pytest.fixture
def compiled(spec):
    return compile_metric(spec)


@pytest.fixture
def cloudwatch() -> MagicMock:
    """A CloudWatch wrapper with no pages and no datapoints by default."""
    mock = MagicMock(spec=WrapperCloudWatch)
    mock.list_metrics_page.return_value = ([], None)
    mock.get_metric_statistics.return_value = []
    return mock
