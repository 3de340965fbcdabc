"""Current configuration snapshot of the exporter.

A snapshot pairs the loaded ``Settings`` with the ``TemplateRegistry``
compiled from them.  ``reload()`` builds a complete new snapshot first and
only then swaps it in, so a failed reload leaves the previous one active and
sessions already running keep the snapshot they started with.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from config import settings as settings_loader
from config.settings import ConfigurationError, Settings
from config.templates import TemplateRegistry, build
from helpers.constants import APP_LOGGER, CONFIG_FILE
from helpers.utils import now_utc
from services.scrape_orchestrator import ScrapeSession
from wrappers import aws_accounts


@dataclass(frozen=True)
class ExporterSnapshot:
    settings: Settings
    registry: TemplateRegistry
    loaded_at: datetime


class ExporterState:
    """Thread-safe holder of the active :class:`ExporterSnapshot`."""

    def __init__(
        self,
        config_file: str = CONFIG_FILE,
        list_regions: Callable[[], Iterable[str]] = aws_accounts.list_regions,
        list_accounts: Callable[[], Iterable[str]] = aws_accounts.list_accounts,
    ) -> None:
        self.config_file = config_file
        self._list_regions = list_regions
        self._list_accounts = list_accounts
        self._lock = threading.Lock()
        self._snapshot: ExporterSnapshot | None = None

    def reload(self) -> ExporterSnapshot:
        """Load the configuration file and atomically replace the snapshot."""
        try:
            settings = settings_loader.load(
                self.config_file, self._list_regions, self._list_accounts
            )
        except (BotoCoreError, ClientError) as exc:
            raise ConfigurationError(f"Cannot expand regions/accounts: {exc}") from exc
        registry = build(settings.tasks, statistic_label=settings.statistic_label)
        snapshot = ExporterSnapshot(
            settings=settings, registry=registry, loaded_at=now_utc()
        )
        with self._lock:
            self._snapshot = snapshot
        APP_LOGGER.info(
            msg="Exporter configuration active",
            config_file=self.config_file,
            tasks=len(settings.tasks),
            metrics=len(registry),
        )
        return snapshot

    @property
    def snapshot(self) -> ExporterSnapshot:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            raise ConfigurationError("Configuration has not been loaded")
        return snapshot

    def new_session(self, target: str, task_name: str, region: str = "") -> ScrapeSession:
        """Create a scrape session bound to the current snapshot."""
        snapshot = self.snapshot
        return ScrapeSession(
            target, task_name, region, snapshot.settings, snapshot.registry
        )
