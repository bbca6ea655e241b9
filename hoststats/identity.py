from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import re
from typing import Sequence

from hoststats.config import ToolsConfig
from hoststats.kernel import KernelStatReader
from hoststats.memory_modules import (
    DmidecodeMemoryParser,
    LshwJsonMemoryParser,
    LshwTextMemoryParser,
    MemoryModuleParser,
)
from hoststats.models import MemoryModule, SystemIdentity
from hoststats.runner import HostCommandRunner

_GPU_LINE = re.compile(
    r"^\S+\s+(?:VGA compatible controller|3D controller|Display controller)"
    r"(?:\s*\[[0-9a-fA-F]{4}\])?:\s*(?P<desc>.+?)\s*$"
)


@dataclass(frozen=True)
class MemoryModuleSource:
    """One rung of the RAM inventory ladder: a tool invocation and its parser."""
    name: str
    command: tuple[str, ...]
    parser: MemoryModuleParser


def default_module_sources(tools: ToolsConfig) -> list[MemoryModuleSource]:
    return [
        MemoryModuleSource("dmidecode", (tools.dmidecode_path, "-t", "memory"), DmidecodeMemoryParser()),
        MemoryModuleSource("lshw-json", (tools.lshw_path, "-json", "-class", "memory"), LshwJsonMemoryParser()),
        MemoryModuleSource("lshw-text", (tools.lshw_path, "-class", "memory"), LshwTextMemoryParser()),
    ]


def parse_os_release(content: str) -> str | None:
    values: dict[str, str] = {}
    for line in content.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep:
            values[key] = value.strip().strip("\"'")
    return values.get("PRETTY_NAME") or values.get("NAME") or None


def parse_lscpu_model(content: str) -> str | None:
    for line in content.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "Model name" and value.strip():
            return value.strip()
    return None


def parse_lspci_gpu(content: str) -> str | None:
    for line in content.splitlines():
        match = _GPU_LINE.match(line)
        if match:
            return match.group("desc")
    return None


def _first_line(output: str | None) -> str | None:
    if not output:
        return None
    for line in output.splitlines():
        if line.strip():
            return line.strip()
    return None


class SystemIdentityReader:
    """Host name, OS, kernel, CPU/GPU model and RAM module inventory.

    Every field is fetched independently; one failing tool only blanks its
    own field.
    """

    def __init__(
        self,
        runner: HostCommandRunner,
        tools: ToolsConfig,
        kernel: KernelStatReader,
        module_sources: Sequence[MemoryModuleSource] | None = None,
    ) -> None:
        self.runner = runner
        self.tools = tools
        self.kernel = kernel
        self.module_sources = (
            list(module_sources) if module_sources is not None else default_module_sources(tools)
        )
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> SystemIdentity:
        hostname, os_name, kernel_version, cpu_model, gpu_model, (modules, source) = (
            await asyncio.gather(
                self.read_hostname(),
                self.read_os_name(),
                self.read_kernel_version(),
                self.read_cpu_model(),
                self.read_gpu_model(),
                self.read_memory_modules(),
            )
        )
        return SystemIdentity(
            hostname=hostname,
            os_name=os_name,
            kernel_version=kernel_version,
            cpu_model=cpu_model,
            gpu_model=gpu_model,
            memory_modules=tuple(modules),
            module_source_tool=source,
        )

    async def read_hostname(self) -> str | None:
        if self.runner.chrooted:
            # chroot keeps our UTS namespace, so `hostname` names the container.
            hostname = _first_line(await self.runner.read_text("/etc/hostname"))
            return hostname or _first_line(await self.runner.run(["hostname"]))
        hostname = _first_line(await self.runner.run(["hostname"]))
        return hostname or _first_line(await self.runner.read_text("/etc/hostname"))

    async def read_os_name(self) -> str | None:
        output = await self.runner.run(["cat", "/etc/os-release"])
        return parse_os_release(output) if output else None

    async def read_kernel_version(self) -> str | None:
        return _first_line(await self.runner.run(["uname", "-r"]))

    async def read_cpu_model(self) -> str | None:
        output = await self.runner.run([self.tools.lscpu_path])
        model = parse_lscpu_model(output) if output else None
        if model:
            return model
        return await self.kernel.read_cpu_model()

    async def read_gpu_model(self) -> str | None:
        output = await self.runner.run([self.tools.lspci_path])
        return parse_lspci_gpu(output) if output else None

    async def read_memory_modules(self) -> tuple[list[MemoryModule], str]:
        for source in self.module_sources:
            output = await self.runner.run(list(source.command))
            if output is None:
                self.logger.debug("Memory source %s unavailable.", source.name)
                continue
            modules = source.parser.parse(output)
            if modules:
                return modules, source.name
            self.logger.debug("Memory source %s reported no modules.", source.name)
        return [], "none"
