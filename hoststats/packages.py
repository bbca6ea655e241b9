from __future__ import annotations

import logging
from typing import Iterator

from hoststats.models import PackageInfo, PackageSnapshot
from hoststats.runner import HostCommandRunner

PLATFORM_PACKAGE = "openmediavault"
PLUGIN_PREFIX = "openmediavault-"


def iter_status_records(content: str) -> Iterator[dict[str, str]]:
    """Yield the top-level fields of each blank-line separated dpkg record."""
    record: dict[str, str] = {}
    for line in content.splitlines():
        if not line.strip():
            if record:
                yield record
            record = {}
            continue
        # Continuation lines (descriptions, conffiles) start with whitespace.
        if line[:1].isspace():
            continue
        key, sep, value = line.partition(":")
        if sep:
            record[key.strip()] = value.strip()
    if record:
        yield record


def is_installed(record: dict[str, str]) -> bool:
    status = record.get("Status")
    # "install ok installed"; records without a Status line are trusted.
    return status is None or status.split()[-1:] == ["installed"]


def summarize_packages(content: str) -> PackageSnapshot:
    platform_version: str | None = None
    plugins: dict[str, PackageInfo] = {}
    for record in iter_status_records(content):
        name = record.get("Package")
        version = record.get("Version")
        if not name or not version or not is_installed(record):
            continue
        if name == PLATFORM_PACKAGE:
            platform_version = platform_version or version
        elif name.startswith(PLUGIN_PREFIX):
            short = name[len(PLUGIN_PREFIX):]
            if short and short not in plugins:
                plugins[short] = PackageInfo(name=short, version=version)
    return PackageSnapshot(
        platform_version=platform_version,
        plugins=tuple(plugins[name] for name in sorted(plugins)),
    )


class PackageInventoryReader:
    """Platform version and installed plugins from the dpkg status database."""

    def __init__(self, runner: HostCommandRunner, status_path: str = "/var/lib/dpkg/status") -> None:
        self.runner = runner
        self.status_path = status_path
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> PackageSnapshot:
        content = await self.runner.read_text(self.status_path)
        if content is None:
            self.logger.debug("Package database %s unavailable.", self.status_path)
            return PackageSnapshot()
        return summarize_packages(content)
