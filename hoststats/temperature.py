from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from hoststats.models import TemperatureReading, TemperatureSnapshot
from hoststats.runner import HostCommandRunner

CPU_CHIPS = frozenset(
    {
        "coretemp",
        "k10temp",
        "k8temp",
        "zenpower",
        "cpu_thermal",
        "cpu-thermal",
        "soc_thermal",
        "x86_pkg_temp",
    }
)

CHASSIS_CHIPS = frozenset(
    {
        "acpitz",
        "nct6775",
        "nct6776",
        "nct6779",
        "nct6798",
        "it87",
        "it8686",
        "it8688",
        "f71882fg",
        "w83627ehf",
        "thinkpad",
        "dell_smm",
        "asus",
        "gigabyte_wmi",
    }
)

CHASSIS_PREFIXES = ("pch_",)

_TEMP_INPUT = re.compile(r"^temp(\d+)_input$")
_HWMON_DIR = re.compile(r"^hwmon(\d+)$")


def classify_chip(name: str) -> str | None:
    """Return ``"cpu"``, ``"chassis"`` or None for a hwmon chip name."""
    lowered = name.strip().lower()
    if lowered in CPU_CHIPS:
        return "cpu"
    if lowered in CHASSIS_CHIPS or lowered.startswith(CHASSIS_PREFIXES):
        return "chassis"
    return None


def chip_from_sensors_key(key: str) -> str:
    """Driver name of an lm-sensors chip key such as ``cpu-thermal-virtual-0``.

    Driver names may themselves contain dashes, so known names are matched as
    prefixes before falling back to the first dash-separated field.
    """
    lowered = key.strip().lower()
    for name in sorted(CPU_CHIPS | CHASSIS_CHIPS, key=len, reverse=True):
        if lowered == name or lowered.startswith(name + "-"):
            return name
    return lowered.split("-", 1)[0]


def build_snapshot(readings: Iterable[tuple[str, int]]) -> TemperatureSnapshot:
    """Fold ``(chip name, celsius)`` pairs into a snapshot.

    The last CPU reading wins; every chassis reading is kept.
    """
    cpu: int | None = None
    chassis: list[TemperatureReading] = []
    for chip, celsius in readings:
        kind = classify_chip(chip)
        if kind == "cpu":
            cpu = celsius
        elif kind == "chassis":
            chassis.append(TemperatureReading(label=chip, celsius=celsius))
    return TemperatureSnapshot(cpu=cpu, chassis=tuple(chassis))


class TemperatureProvider(Protocol):
    name: str

    async def read(self) -> TemperatureSnapshot: ...


class HwmonProvider:
    name = "hwmon"

    def __init__(self, hwmon_root: str = "/sys/class/hwmon") -> None:
        self.hwmon_root = Path(hwmon_root)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> TemperatureSnapshot:
        readings = await asyncio.to_thread(self._scan)
        return build_snapshot(readings)

    def _scan(self) -> list[tuple[str, int]]:
        try:
            entries = [entry for entry in self.hwmon_root.iterdir() if _HWMON_DIR.match(entry.name)]
        except OSError:
            self.logger.debug("hwmon tree %s unavailable.", self.hwmon_root)
            return []
        entries.sort(key=lambda entry: int(_HWMON_DIR.match(entry.name).group(1)))

        readings: list[tuple[str, int]] = []
        for chip_dir in entries:
            try:
                chip = (chip_dir / "name").read_text().strip()
                channels = [
                    (int(match.group(1)), path)
                    for path in chip_dir.iterdir()
                    if (match := _TEMP_INPUT.match(path.name))
                ]
            except OSError:
                continue
            if not chip:
                continue
            for _, path in sorted(channels):
                try:
                    millideg = int(path.read_text().strip())
                except (OSError, ValueError):
                    continue
                readings.append((chip, millideg // 1000))
        return readings


class SensorsProvider:
    """lm-sensors ``sensors -j`` output, used when sysfs is not mounted."""

    name = "sensors"

    def __init__(self, runner: HostCommandRunner, sensors_path: str = "sensors") -> None:
        self.runner = runner
        self.sensors_path = sensors_path
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> TemperatureSnapshot:
        output = await self.runner.run([self.sensors_path, "-j"])
        if output is None:
            return TemperatureSnapshot()
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            self.logger.debug("Failed to parse sensors JSON output.")
            return TemperatureSnapshot()
        if not isinstance(data, dict):
            return TemperatureSnapshot()
        return build_snapshot(self._readings(data))

    @staticmethod
    def _readings(data: dict[str, Any]) -> list[tuple[str, int]]:
        readings: list[tuple[str, int]] = []
        for chip_key, chip_data in data.items():
            if not isinstance(chip_data, dict):
                continue
            chip = chip_from_sensors_key(chip_key)
            for values in chip_data.values():
                if not isinstance(values, dict):
                    continue
                for key, value in values.items():
                    if _TEMP_INPUT.match(key) and isinstance(value, (int, float)):
                        readings.append((chip, int(value)))
        return readings


class TemperatureProbe:
    """Polls providers in priority order and keeps the first non-empty answer."""

    def __init__(self, providers: Sequence[TemperatureProvider]) -> None:
        self.providers = list(providers)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> TemperatureSnapshot:
        for provider in self.providers:
            snapshot = await provider.read()
            if not snapshot.is_empty():
                return replace(snapshot, source=provider.name)
            self.logger.debug("Temperature provider %s returned nothing.", provider.name)
        return TemperatureSnapshot()
