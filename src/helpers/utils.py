"""Utility functions for time and Prometheus name handling."""

import re
from datetime import datetime, timezone

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def to_snake_case(name: str) -> str:
    """Convert ``CamelCase`` / ``mixedCase`` to ``snake_case``.

    ``CPUUtilization`` -> ``cpu_utilization``, ``InstanceId`` -> ``instance_id``.
    Characters other than letters are left alone; :func:`safe_name` deals
    with those.
    """
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    name = _CAMEL_BOUNDARY.sub(r"\1_\2", name)
    return name.lower()


def safe_name(name: str) -> str:
    """Make ``name`` a valid Prometheus metric or label name.

    Every character outside ``[a-zA-Z0-9_]`` becomes ``_``, runs of
    underscores are collapsed, and a leading digit gets a ``_`` prefix.
    """
    name = _INVALID_NAME_CHARS.sub("_", name)
    name = _REPEATED_UNDERSCORES.sub("_", name)
    if not name or name[0].isdigit():
        name = "_" + name
    return name
