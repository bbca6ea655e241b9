from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
import configparser
import os
from typing import Mapping


@dataclass(frozen=True)
class PathsConfig:
    host_root: str
    proc_root: str
    hwmon_root: str
    dpkg_status_path: str


@dataclass(frozen=True)
class ToolsConfig:
    chroot_path: str
    omv_rpc_path: str
    lsblk_path: str
    sensors_path: str
    dmidecode_path: str
    lshw_path: str
    lspci_path: str
    lscpu_path: str
    docker_path: str


@dataclass(frozen=True)
class CaptureConfig:
    command_timeout_s: float
    max_output_bytes: int
    interval_s: int


@dataclass(frozen=True)
class AppConfig:
    paths: PathsConfig
    tools: ToolsConfig
    capture: CaptureConfig


# Environment variable -> (section, option)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "HOSTSTATS_HOST_ROOT": ("paths", "host_root"),
    "HOSTSTATS_PROC_ROOT": ("paths", "proc_root"),
    "HOSTSTATS_HWMON_ROOT": ("paths", "hwmon_root"),
    "HOSTSTATS_DPKG_STATUS": ("paths", "dpkg_status_path"),
    "HOSTSTATS_COMMAND_TIMEOUT": ("capture", "command_timeout_s"),
    "HOSTSTATS_INTERVAL": ("capture", "interval_s"),
}


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _apply_env(parser: configparser.ConfigParser, environ: Mapping[str, str]) -> None:
    for name, (section, option) in ENV_OVERRIDES.items():
        value = _get_optional(environ.get(name))
        if value is None:
            continue
        if not parser.has_section(section):
            parser.add_section(section)
        parser.set(section, option, value)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build the application config from an optional CFG file plus environment.

    Every section and key is optional. ``HOSTSTATS_*`` environment variables
    win over the file.
    """
    parser = configparser.ConfigParser(interpolation=None)
    if path is not None:
        read_files = parser.read(path)
        if not read_files:
            raise FileNotFoundError(f"Config file not found: {path}")
    _apply_env(parser, os.environ if environ is None else environ)

    paths = PathsConfig(
        host_root=parser.get("paths", "host_root", fallback="/"),
        proc_root=parser.get("paths", "proc_root", fallback="/proc"),
        hwmon_root=parser.get("paths", "hwmon_root", fallback="/sys/class/hwmon"),
        dpkg_status_path=parser.get(
            "paths", "dpkg_status_path", fallback="/var/lib/dpkg/status"
        ),
    )

    tools = ToolsConfig(
        chroot_path=parser.get("tools", "chroot_path", fallback="chroot"),
        omv_rpc_path=parser.get("tools", "omv_rpc_path", fallback="omv-rpc"),
        lsblk_path=parser.get("tools", "lsblk_path", fallback="lsblk"),
        sensors_path=parser.get("tools", "sensors_path", fallback="sensors"),
        dmidecode_path=parser.get("tools", "dmidecode_path", fallback="dmidecode"),
        lshw_path=parser.get("tools", "lshw_path", fallback="lshw"),
        lspci_path=parser.get("tools", "lspci_path", fallback="lspci"),
        lscpu_path=parser.get("tools", "lscpu_path", fallback="lscpu"),
        docker_path=parser.get("tools", "docker_path", fallback="docker"),
    )

    capture = CaptureConfig(
        command_timeout_s=parser.getfloat("capture", "command_timeout_s", fallback=15.0),
        max_output_bytes=parser.getint(
            "capture", "max_output_bytes", fallback=4 * 1024 * 1024
        ),
        interval_s=parser.getint("capture", "interval_s", fallback=30),
    )

    return AppConfig(paths=paths, tools=tools, capture=capture)


def with_paths(config: AppConfig, **changes: str) -> AppConfig:
    """Return a copy of ``config`` with some path settings replaced."""
    return replace(config, paths=replace(config.paths, **changes))
