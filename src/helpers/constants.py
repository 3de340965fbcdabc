"""Manage all constants / shared resources."""

import os

from helpers.logger import ExporterLogger

# Generic Global Env Variables
TRUE_VALUES = ("true", "1", "yes")

# Debug Mode / Level for the Logger
DEBUG_MODE = os.environ.get("DEBUG_MODE", default="False").lower() in TRUE_VALUES
APP_LOGGER = ExporterLogger(debug=DEBUG_MODE)

# Exporter configuration file (YAML)
CONFIG_FILE = os.environ.get("CONFIG_FILE", default="config.yml")

# HTTP listener
LISTEN_HOST = os.environ.get("LISTEN_HOST", default="0.0.0.0")
LISTEN_PORT = int(os.environ.get("LISTEN_PORT", default=9042))

# Upper bound on in-flight discovered dimension-set queries per scrape
MAX_CONCURRENT_REQUESTS = int(os.environ.get("MAX_CONCURRENT_REQUESTS", default=20))

# Consecutive failures tolerated on a ListMetrics continuation page
DISCOVERY_PAGE_ATTEMPTS = int(os.environ.get("DISCOVERY_PAGE_ATTEMPTS", default=3))

# Token in aws_dimensions_select replaced by the scrape target
TARGET_TOKEN = "$_target"

# Account label value for tasks without an account
ACCOUNT_NOT_SPECIFIED = "Not Specified"

# Statistics GetMetricStatistics can return, in emission order
STATISTICS = ("Sum", "Average", "Maximum", "Minimum", "SampleCount")

# Query window defaults (seconds)
DEFAULT_RANGE_SECONDS = 600
DEFAULT_PERIOD_SECONDS = 60
DEFAULT_DELAY_SECONDS = 600
