"""Manage AWS CloudWatch interactions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from prometheus_client import Counter

from helpers.constants import APP_LOGGER

# Process-wide, every CloudWatch API call (pages included)
REQUESTS_TOTAL = Counter(
    "cloudwatch_exporter_requests_total",
    "API requests made to CloudWatch",
)


class ProviderError(Exception):
    """A single CloudWatch call failed."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class WrapperCloudWatch:
    """Object to wrap CloudWatch calls for one task (region + optional role).

    The boto3 client is created once and shared by all scrape units of the
    task; boto3 clients are safe to use from several threads.
    """

    def __init__(self, region: str, role_arn: str | None = None) -> None:
        self.region = region
        self.role_arn = role_arn
        self.client = self._make_client()

    def _make_client(self) -> Any:
        session = boto3.session.Session()
        if not self.role_arn:
            return session.client("cloudwatch", region_name=self.region)

        sts = session.client("sts", region_name=self.region)
        credentials = sts.assume_role(
            RoleArn=self.role_arn, RoleSessionName="cloudwatch-exporter"
        )["Credentials"]
        APP_LOGGER.debug(msg=f"Assumed role {self.role_arn}", region=self.region)
        return session.client(
            "cloudwatch",
            region_name=self.region,
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
        )

    def list_metrics_page(
        self, namespace: str, metric_name: str, next_token: str | None = None
    ) -> tuple[list[dict[str, str]], str | None]:
        """Return one ``ListMetrics`` page as ``(combinations, next_token)``.

        Each combination is a ``{dimension name: value}`` mapping.
        """
        params: dict[str, Any] = {"Namespace": namespace, "MetricName": metric_name}
        if next_token:
            params["NextToken"] = next_token

        response = self._call("ListMetrics", self.client.list_metrics, **params)
        combinations = [
            {dim["Name"]: dim["Value"] for dim in metric.get("Dimensions", [])}
            for metric in response.get("Metrics", [])
        ]
        return combinations, response.get("NextToken") or None

    def get_metric_statistics(
        self,
        namespace: str,
        metric_name: str,
        dimensions: list[tuple[str, str]],
        statistics: list[str],
        start_time: datetime,
        end_time: datetime,
        period: int,
    ) -> list[dict[str, Any]]:
        """Return the raw ``Datapoints`` list of a ``GetMetricStatistics`` call."""
        response = self._call(
            "GetMetricStatistics",
            self.client.get_metric_statistics,
            Namespace=namespace,
            MetricName=metric_name,
            Dimensions=[{"Name": name, "Value": value} for name, value in dimensions],
            Statistics=statistics,
            StartTime=start_time,
            EndTime=end_time,
            Period=period,
        )
        return response.get("Datapoints", [])

    def _call(self, operation: str, method: Any, **params: Any) -> dict[str, Any]:
        REQUESTS_TOTAL.inc()
        try:
            return method(**params)
        except (ClientError, BotoCoreError) as exc:
            raise ProviderError(operation, exc) from exc
