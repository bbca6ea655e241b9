from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
import re
from typing import Any, Iterator

import psutil

from hoststats.models import (
    BlockDevice,
    PhysicalDrive,
    SmartDeviceRecord,
    UsageRecord,
    percent_of,
)
from hoststats.runner import HostCommandRunner

# omv-rpc Smart.getList: every device, sorted by device file ascending.
SMART_QUERY = {"start": 0, "limit": -1, "sortfield": "devicefile", "sortdir": "ASC"}

PHYSICAL_DISK = re.compile(r"^/dev/(sd[a-z]+|nvme\d+n\d+)$")
BY_ID_PREFIX = "/dev/disk/"

STATUS_GOOD = "GOOD"
STATUS_WARNING = "WARNING"
STATUS_FAILING = "FAILING"
STATUS_UNKNOWN = "UNKNOWN"

# Raw status values seen across omv-rpc and smartctl versions, upper-cased.
STATUS_MAP = {
    "GOOD": STATUS_GOOD,
    "OK": STATUS_GOOD,
    "PASSED": STATUS_GOOD,
    "BAD_ATTRIBUTE_IN_THE_PAST": STATUS_WARNING,
    "BAD_SECTOR": STATUS_WARNING,
    "WARNING": STATUS_WARNING,
    "BAD_ATTRIBUTE_NOW": STATUS_FAILING,
    "BAD_SECTOR_MANY": STATUS_FAILING,
    "BAD_STATUS": STATUS_FAILING,
    "FAILED": STATUS_FAILING,
    "FAILING": STATUS_FAILING,
}

STATUS_KEYS = ("overallstatus", "overallStatus", "overall_status", "status")

SWAP_MOUNTPOINTS = frozenset({"[SWAP]", "swap", "none"})

_LEADING_NUMBER = re.compile(r"^\s*\+?(-?\d+(?:\.\d+)?)")


def normalize_status(raw: dict[str, Any]) -> str:
    for key in STATUS_KEYS:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return STATUS_MAP.get(value.strip().upper(), STATUS_UNKNOWN)
    return STATUS_UNKNOWN


def parse_temperature(value: Any) -> int | None:
    """Accept 34, 34.6 or "34°C". Anything else, and non-positive values, is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        celsius = int(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return None
        celsius = int(float(match.group(1)))
    else:
        return None
    return celsius if celsius > 0 else None


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_smart_record(raw: Any) -> SmartDeviceRecord | None:
    if not isinstance(raw, dict):
        return None
    device_file = _clean(raw.get("devicefile")) or _clean(raw.get("canonicaldevicefile"))
    if device_file is None:
        return None
    return SmartDeviceRecord(
        device_file=device_file,
        overall_status=normalize_status(raw),
        model=_clean(raw.get("model")),
        temperature_c=parse_temperature(raw.get("temperature")),
        size_bytes=_parse_int(raw.get("size")),
    )


@dataclass(frozen=True)
class ResolvedSmartDevice:
    device_path: str
    by_id_path: str | None
    record: SmartDeviceRecord


class DriveInventoryResolver:
    """Physical drives known to the drive-health tool, keyed by real devnode."""

    def __init__(self, runner: HostCommandRunner, omv_rpc_path: str = "omv-rpc") -> None:
        self.runner = runner
        self.omv_rpc_path = omv_rpc_path
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> list[ResolvedSmartDevice]:
        output = await self.runner.run(
            [self.omv_rpc_path, "-u", "admin", "Smart", "getList", json.dumps(SMART_QUERY)]
        )
        if output is None:
            self.logger.debug("Drive inventory unavailable.")
            return []
        try:
            envelope = json.loads(output)
        except json.JSONDecodeError:
            self.logger.debug("Failed to parse drive inventory JSON.")
            return []
        rows = envelope.get("data") if isinstance(envelope, dict) else None
        if not isinstance(rows, list):
            self.logger.debug("Drive inventory has no data array.")
            return []

        devices: list[ResolvedSmartDevice] = []
        seen: set[str] = set()
        for raw in rows:
            record = parse_smart_record(raw)
            if record is None:
                continue
            device_path = await self.resolve(record.device_file)
            if device_path is None or not PHYSICAL_DISK.match(device_path):
                self.logger.debug("Skipping non-disk device %s.", record.device_file)
                continue
            if device_path in seen:
                continue
            seen.add(device_path)
            by_id = record.device_file if record.device_file != device_path else None
            devices.append(ResolvedSmartDevice(device_path, by_id, record))
        return devices

    async def resolve(self, device_file: str) -> str | None:
        if not device_file.startswith(BY_ID_PREFIX):
            return device_file
        return await self.runner.read_link(device_file)


def parse_block_device(raw: dict[str, Any]) -> BlockDevice:
    name = str(raw.get("name") or "")
    mountpoint = raw.get("mountpoint")
    if not mountpoint:
        # util-linux >= 2.37 reports a list
        mountpoint = next((mp for mp in raw.get("mountpoints") or [] if mp), None)
    return BlockDevice(
        name=name,
        kind=str(raw.get("type") or ""),
        size_bytes=_parse_int(raw.get("size")),
        path=raw.get("path") or f"/dev/{name}",
        mountpoint=mountpoint,
        children=[
            parse_block_device(child)
            for child in raw.get("children") or []
            if isinstance(child, dict)
        ],
    )


def active_mountpoints(device: BlockDevice) -> Iterator[str]:
    """Every non-swap mountpoint on ``device`` and all its descendants."""
    if device.mountpoint and device.mountpoint not in SWAP_MOUNTPOINTS:
        yield device.mountpoint
    for child in device.children:
        yield from active_mountpoints(child)


class PartitionUsageAggregator:
    """Sums filesystem usage of mounted partitions onto their parent disk."""

    def __init__(self, runner: HostCommandRunner, lsblk_path: str = "lsblk") -> None:
        self.runner = runner
        self.lsblk_path = lsblk_path
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> dict[str, UsageRecord]:
        output = await self.runner.run(
            [self.lsblk_path, "-J", "-b", "-o", "NAME,TYPE,SIZE,MOUNTPOINT"]
        )
        if output is None:
            self.logger.debug("lsblk command failed or missing.")
            return {}
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            self.logger.debug("Failed to parse lsblk output JSON.")
            return {}
        if not isinstance(data, dict):
            return {}

        usage: dict[str, UsageRecord] = {}
        for raw in data.get("blockdevices") or []:
            if not isinstance(raw, dict):
                continue
            device = parse_block_device(raw)
            if device.kind != "disk" or not device.name:
                continue
            record = UsageRecord(size_bytes=device.size_bytes)
            usage[device.path] = record
            counted: set[str] = set()
            for mountpoint in active_mountpoints(device):
                if mountpoint in counted:
                    continue
                counted.add(mountpoint)
                used = await self._used_bytes(mountpoint)
                if used is not None:
                    record.used_bytes += used
        return usage

    async def _used_bytes(self, mountpoint: str) -> int | None:
        path = self.runner.host_path(mountpoint)
        try:
            stats = await asyncio.to_thread(psutil.disk_usage, path)
        except OSError:
            self.logger.debug("Skipping usage for %s (unreadable).", mountpoint)
            return None
        return int(stats.used)


def merge_drives(
    devices: list[ResolvedSmartDevice], usage: dict[str, UsageRecord]
) -> tuple[PhysicalDrive, ...]:
    drives: list[PhysicalDrive] = []
    for device in devices:
        record = usage.get(device.device_path)
        size = record.size_bytes if record and record.size_bytes else device.record.size_bytes
        used = record.used_bytes if record else 0
        # No usage record means usage is unknown, not zero.
        percent = percent_of(used, size) if record else None
        drives.append(
            PhysicalDrive(
                device_path=device.device_path,
                by_id_path=device.by_id_path,
                status=device.record.overall_status,
                size_bytes=size,
                used_bytes=used,
                used_percent=percent,
                model=device.record.model,
                temperature_c=device.record.temperature_c,
            )
        )
    return tuple(drives)
