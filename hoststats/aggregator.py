from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Awaitable, Callable, TypeVar

from hoststats.config import AppConfig, load_config
from hoststats.containers import ContainerStatusReader
from hoststats.drives import DriveInventoryResolver, PartitionUsageAggregator, merge_drives
from hoststats.identity import SystemIdentityReader
from hoststats.kernel import KernelStatReader
from hoststats.models import (
    LoadSnapshot,
    MemorySnapshot,
    PackageSnapshot,
    StatsSnapshot,
    SystemIdentity,
    TemperatureSnapshot,
    UptimeSnapshot,
)
from hoststats.packages import PackageInventoryReader
from hoststats.runner import HostCommandRunner
from hoststats.temperature import HwmonProvider, SensorsProvider, TemperatureProbe

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatsAggregator:
    """Runs every reader concurrently and joins the results into one snapshot.

    Nothing is cached between captures; each call re-reads the host.
    """

    def __init__(
        self,
        config: AppConfig,
        runner: HostCommandRunner | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.runner = runner if runner is not None else HostCommandRunner(config)
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

        tools = config.tools
        self.kernel = KernelStatReader(config.paths.proc_root)
        self.temperatures = TemperatureProbe(
            [
                HwmonProvider(config.paths.hwmon_root),
                SensorsProvider(self.runner, tools.sensors_path),
            ]
        )
        self.drives = DriveInventoryResolver(self.runner, tools.omv_rpc_path)
        self.usage = PartitionUsageAggregator(self.runner, tools.lsblk_path)
        self.identity = SystemIdentityReader(self.runner, tools, self.kernel)
        self.packages = PackageInventoryReader(self.runner, config.paths.dpkg_status_path)
        self.containers = ContainerStatusReader(self.runner, tools.docker_path)

    async def capture(self) -> StatsSnapshot:
        self.logger.debug("Capturing host snapshot.")
        captured_at = self.clock().isoformat()
        (
            memory,
            (load, uptime),
            temperatures,
            devices,
            usage,
            identity,
            packages,
            containers,
        ) = await asyncio.gather(
            self._settle("memory", self.kernel.read_memory(), MemorySnapshot()),
            self._settle(
                "load",
                self.kernel.read_load_and_uptime(),
                (LoadSnapshot(), UptimeSnapshot()),
            ),
            self._settle("temperatures", self.temperatures.read(), TemperatureSnapshot()),
            self._settle("drives", self.drives.read(), []),
            self._settle("usage", self.usage.read(), {}),
            self._settle("identity", self.identity.read(), SystemIdentity()),
            self._settle("packages", self.packages.read(), PackageSnapshot()),
            self._settle("containers", self.containers.read(), []),
        )
        snapshot = StatsSnapshot(
            captured_at=captured_at,
            memory=memory,
            load=load,
            uptime=uptime,
            temperatures=temperatures,
            drives=merge_drives(devices, usage),
            identity=identity,
            packages=packages,
            containers=tuple(containers),
        )
        self.logger.debug(
            "Captured snapshot with %s drives and %s containers.",
            len(snapshot.drives),
            len(snapshot.containers),
        )
        return snapshot

    async def _settle(self, branch: str, awaitable: Awaitable[T], default: T) -> T:
        try:
            return await awaitable
        except Exception:
            self.logger.warning("Reader %s failed; using empty result.", branch, exc_info=True)
            return default


def capture_snapshot(config: AppConfig | None = None) -> StatsSnapshot:
    """Synchronous entry point: one fresh snapshot of the host."""
    return asyncio.run(StatsAggregator(config or load_config()).capture())
