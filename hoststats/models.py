from __future__ import annotations

from dataclasses import asdict, dataclass, field
import math
from typing import Any

SCHEMA_NAME = "hoststats-snapshot"
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class MemorySnapshot:
    total_bytes: int = 0
    used_bytes: int = 0
    percent_used: int = 0


@dataclass(frozen=True)
class LoadSnapshot:
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0


@dataclass(frozen=True)
class UptimeSnapshot:
    days: int = 0
    hours: int = 0
    minutes: int = 0

    @classmethod
    def from_seconds(cls, seconds: int) -> UptimeSnapshot:
        seconds = max(0, seconds)
        return cls(
            days=seconds // 86400,
            hours=(seconds % 86400) // 3600,
            minutes=(seconds % 3600) // 60,
        )


@dataclass
class BlockDevice:
    """One node of the lsblk topology. Only lives for the length of a walk."""
    name: str
    kind: str
    size_bytes: int | None
    path: str
    mountpoint: str | None = None
    children: list[BlockDevice] = field(default_factory=list)


@dataclass
class UsageRecord:
    size_bytes: int | None
    used_bytes: int = 0


@dataclass(frozen=True)
class SmartDeviceRecord:
    device_file: str
    overall_status: str
    model: str | None = None
    temperature_c: int | None = None
    size_bytes: int | None = None


@dataclass(frozen=True)
class PhysicalDrive:
    device_path: str
    by_id_path: str | None
    status: str
    size_bytes: int | None
    used_bytes: int
    used_percent: int | None
    model: str | None = None
    temperature_c: int | None = None


@dataclass(frozen=True)
class TemperatureReading:
    label: str
    celsius: int


@dataclass(frozen=True)
class TemperatureSnapshot:
    cpu: int | None = None
    chassis: tuple[TemperatureReading, ...] = ()
    source: str | None = None

    def is_empty(self) -> bool:
        return self.cpu is None and not self.chassis


@dataclass(frozen=True)
class MemoryModule:
    slot: str
    size_label: str
    speed_label: str | None = None
    manufacturer: str | None = None
    part_number: str | None = None
    serial_number: str | None = None


@dataclass(frozen=True)
class SystemIdentity:
    hostname: str | None = None
    os_name: str | None = None
    kernel_version: str | None = None
    cpu_model: str | None = None
    gpu_model: str | None = None
    memory_modules: tuple[MemoryModule, ...] = ()
    module_source_tool: str = "none"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str


@dataclass(frozen=True)
class PackageSnapshot:
    platform_version: str | None = None
    plugins: tuple[PackageInfo, ...] = ()


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    status_text: str
    image: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class StatsSnapshot:
    captured_at: str
    memory: MemorySnapshot = field(default_factory=MemorySnapshot)
    load: LoadSnapshot = field(default_factory=LoadSnapshot)
    uptime: UptimeSnapshot = field(default_factory=UptimeSnapshot)
    temperatures: TemperatureSnapshot = field(default_factory=TemperatureSnapshot)
    drives: tuple[PhysicalDrive, ...] = ()
    identity: SystemIdentity = field(default_factory=SystemIdentity)
    packages: PackageSnapshot = field(default_factory=PackageSnapshot)
    containers: tuple[ContainerStatus, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["schema"] = {"name": SCHEMA_NAME, "version": SCHEMA_VERSION}
        return _lists(payload)


def _lists(value: Any) -> Any:
    # asdict keeps tuples as tuples; JSON and the schema want arrays.
    if isinstance(value, dict):
        return {key: _lists(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_lists(item) for item in value]
    return value


def percent_of(part: int, whole: int | None) -> int | None:
    """Rounded (half up) percentage clamped to [0, 100]; None when whole is unknown."""
    if not whole or whole <= 0:
        return None
    return min(100, max(0, math.floor(part * 100 / whole + 0.5)))
