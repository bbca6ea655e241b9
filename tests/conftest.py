"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

import pytest

from hoststats.config import AppConfig, load_config, with_paths


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as reading a Linux procfs/sysfs layout"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeRunner:
    """Stands in for HostCommandRunner with canned tool output.

    ``outputs`` is keyed either by the full command tuple or by the binary
    name alone; the full tuple wins.
    """

    def __init__(
        self,
        outputs: dict | None = None,
        files: dict[str, str] | None = None,
        links: dict[str, str] | None = None,
        host_root: str = "/",
    ) -> None:
        self.outputs = outputs or {}
        self.files = files or {}
        self.links = links or {}
        self.host_root = host_root
        self.calls: list[tuple[str, ...]] = []

    async def run(self, args: Sequence[str]) -> str | None:
        command = tuple(args)
        self.calls.append(command)
        if command in self.outputs:
            return self.outputs[command]
        return self.outputs.get(command[0])

    @property
    def chrooted(self) -> bool:
        return self.host_root != "/"

    def host_path(self, path: str) -> str:
        if self.host_root == "/":
            return path
        return os.path.join(self.host_root, path.lstrip("/"))

    async def read_text(self, path: str) -> str | None:
        return self.files.get(path)

    async def read_link(self, path: str) -> str | None:
        return self.links.get(path)


def write_tree(root: Path, files: dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


@pytest.fixture
def fake_runner_factory():
    return FakeRunner


@pytest.fixture
def make_tree():
    return write_tree


@pytest.fixture
def base_config() -> AppConfig:
    """Defaults only, ignoring the developer's environment."""
    return load_config(environ={})


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    root = tmp_path / "proc"
    write_tree(
        root,
        {
            "meminfo": (
                "MemTotal:       16000000 kB\n"
                "MemFree:         4000000 kB\n"
                "MemAvailable:    9000000 kB\n"
                "Buffers:          500000 kB\n"
                "Cached:          3500000 kB\n"
                "SwapCached:            0 kB\n"
            ),
            "loadavg": "0.52 0.58 0.59 2/612 12345\n",
            "uptime": "190920.44 760000.00\n",
            "cpuinfo": "processor\t: 0\nmodel name\t: Intel(R) Celeron(R) J4125 CPU @ 2.00GHz\n",
        },
    )
    return root


@pytest.fixture
def hwmon_root(tmp_path: Path) -> Path:
    root = tmp_path / "hwmon"
    write_tree(
        root,
        {
            "hwmon0/name": "acpitz\n",
            "hwmon0/temp1_input": "38000\n",
            "hwmon1/name": "coretemp\n",
            "hwmon1/temp1_input": "45000\n",
            "hwmon2/name": "nvme\n",
            "hwmon2/temp1_input": "41850\n",
        },
    )
    return root


@pytest.fixture
def tree_config(base_config: AppConfig, proc_root: Path, hwmon_root: Path) -> AppConfig:
    return with_paths(base_config, proc_root=str(proc_root), hwmon_root=str(hwmon_root))
