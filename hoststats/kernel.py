from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from hoststats.models import LoadSnapshot, MemorySnapshot, UptimeSnapshot, percent_of
from hoststats.runner import read_text


def parse_meminfo(content: str) -> dict[str, int]:
    """Parse ``/proc/meminfo`` style ``Key:   value kB`` lines (values kept in kB)."""
    result: dict[str, int] = {}
    for line in content.splitlines():
        key, sep, rest = line.partition(":")
        if not sep:
            continue
        parts = rest.split()
        if not parts:
            continue
        try:
            result[key.strip()] = int(parts[0])
        except ValueError:
            pass
    return result


def memory_from_meminfo(meminfo: dict[str, int]) -> MemorySnapshot:
    total_kb = meminfo.get("MemTotal", 0)
    if total_kb <= 0:
        return MemorySnapshot()
    free_kb = meminfo.get("MemFree", 0) + meminfo.get("Buffers", 0) + meminfo.get("Cached", 0)
    used_kb = max(0, total_kb - free_kb)
    percent = percent_of(used_kb, total_kb) or 0
    return MemorySnapshot(
        total_bytes=total_kb * 1024,
        used_bytes=used_kb * 1024,
        percent_used=percent,
    )


def parse_loadavg(content: str) -> LoadSnapshot:
    fields = content.split()
    if len(fields) < 3:
        raise ValueError(f"unexpected loadavg content: {content!r}")
    return LoadSnapshot(float(fields[0]), float(fields[1]), float(fields[2]))


def parse_uptime(content: str) -> UptimeSnapshot:
    fields = content.split()
    if not fields:
        raise ValueError("empty uptime content")
    return UptimeSnapshot.from_seconds(int(float(fields[0])))


class KernelStatReader:
    """Memory, load and uptime from the kernel's proc pseudo-files."""

    def __init__(self, proc_root: str = "/proc") -> None:
        self.proc_root = Path(proc_root)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read_memory(self) -> MemorySnapshot:
        content = await read_text(self.proc_root / "meminfo")
        if content is None:
            self.logger.debug("meminfo unavailable under %s.", self.proc_root)
            return MemorySnapshot()
        return memory_from_meminfo(parse_meminfo(content))

    async def read_load_and_uptime(self) -> tuple[LoadSnapshot, UptimeSnapshot]:
        load_raw, uptime_raw = await asyncio.gather(
            read_text(self.proc_root / "loadavg"),
            read_text(self.proc_root / "uptime"),
        )
        load = LoadSnapshot()
        uptime = UptimeSnapshot()
        if load_raw is not None:
            try:
                load = parse_loadavg(load_raw)
            except ValueError:
                self.logger.debug("Failed to parse loadavg: %r", load_raw)
        if uptime_raw is not None:
            try:
                uptime = parse_uptime(uptime_raw)
            except (ValueError, OverflowError):
                self.logger.debug("Failed to parse uptime: %r", uptime_raw)
        return load, uptime

    async def read_cpu_model(self) -> str | None:
        content = await read_text(self.proc_root / "cpuinfo")
        if not content:
            return None
        for line in content.splitlines():
            key, sep, value = line.partition(":")
            # "model name" on x86, "Model" on some ARM boards
            if sep and key.strip() in {"model name", "Model"} and value.strip():
                return value.strip()
        return None
