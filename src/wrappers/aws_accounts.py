"""Lookups used to expand ``all`` regions and accounts in the configuration."""

import boto3

from helpers.constants import APP_LOGGER


def list_regions() -> list[str]:
    """Return every region enabled for the current account."""
    ec2 = boto3.client("ec2")
    regions = [r["RegionName"] for r in ec2.describe_regions()["Regions"]]
    APP_LOGGER.debug(msg=f"Found {len(regions)} regions")
    return regions


def list_accounts() -> list[str]:
    """Return the IDs of every ACTIVE account of the AWS Organization."""
    organizations = boto3.client("organizations")
    paginator = organizations.get_paginator("list_accounts")
    accounts = [
        account["Id"]
        for page in paginator.paginate()
        for account in page["Accounts"]
        if account.get("Status") == "ACTIVE"
    ]
    APP_LOGGER.debug(msg=f"Found {len(accounts)} organization accounts")
    return accounts
