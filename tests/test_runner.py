"""Tests for the chrooted host command runner."""
from __future__ import annotations

import asyncio
from dataclasses import replace
import os
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hoststats.config import with_paths
from hoststats.runner import COMMAND_ENV, HostCommandRunner, read_text


def make_process(stdout=b"", stderr=b"", returncode=0, finished=True, exits=True):
    """A stand-in for asyncio.subprocess.Process backed by real StreamReaders.

    ``finished`` closes both pipes; ``exits`` lets ``wait()`` return before
    the process is killed.
    """
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = None
    proc.stdout = asyncio.StreamReader()
    proc.stderr = asyncio.StreamReader()
    proc.stdout.feed_data(stdout)
    proc.stderr.feed_data(stderr)
    if finished:
        proc.stdout.feed_eof()
        proc.stderr.feed_eof()

    exited = asyncio.Event()
    if exits:
        exited.set()

    async def wait():
        await exited.wait()
        proc.returncode = returncode
        return returncode

    proc.wait = wait
    proc.kill = MagicMock(side_effect=exited.set)
    return proc


@pytest.fixture
def runner(base_config):
    return HostCommandRunner(base_config)


@pytest.fixture
def chroot_runner(base_config):
    return HostCommandRunner(with_paths(base_config, host_root="/host"))


def test_command_line_without_host_root(runner):
    assert not runner.chrooted
    assert runner.command_line(["lsblk", "-J"]) == ["lsblk", "-J"]
    assert runner.host_path("/srv/data") == "/srv/data"


def test_command_line_is_chrooted(chroot_runner):
    assert chroot_runner.chrooted
    assert chroot_runner.command_line(["lsblk", "-J"]) == ["chroot", "/host", "lsblk", "-J"]
    assert chroot_runner.host_path("/srv/data") == "/host/srv/data"


@pytest.mark.asyncio
async def test_run_returns_stdout_with_c_locale(runner):
    proc = make_process(stdout=b"hello\n")
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)) as spawn:
        assert await runner.run(["echo", "hello"]) == "hello\n"
    args, kwargs = spawn.call_args
    assert args == ("echo", "hello")
    assert kwargs["env"] == COMMAND_ENV
    assert kwargs["env"]["LC_ALL"] == "C"


@pytest.mark.asyncio
async def test_run_keeps_output_of_failed_command(runner):
    proc = make_process(stdout=b'{"data": []}', returncode=4)
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
        assert await runner.run(["smartctl", "-j"]) == '{"data": []}'


@pytest.mark.asyncio
async def test_run_failed_command_without_output_is_none(runner):
    proc = make_process(stderr=b"permission denied", returncode=1)
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
        assert await runner.run(["dmidecode"]) is None


@pytest.mark.asyncio
async def test_run_missing_binary_is_none(runner):
    spawn = AsyncMock(side_effect=FileNotFoundError("no such file"))
    with patch("asyncio.create_subprocess_exec", new=spawn):
        assert await runner.run(["omv-rpc"]) is None


@pytest.mark.asyncio
async def test_run_permission_error_is_none(runner):
    spawn = AsyncMock(side_effect=PermissionError("denied"))
    with patch("asyncio.create_subprocess_exec", new=spawn):
        assert await runner.run(["chroot"]) is None


@pytest.mark.asyncio
async def test_run_timeout_kills_process(base_config):
    config = replace(base_config, capture=replace(base_config.capture, command_timeout_s=0.05))
    runner = HostCommandRunner(config)
    proc = make_process(finished=False)
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
        assert await runner.run(["lshw"]) is None
    proc.kill.assert_called_once()


@pytest.mark.asyncio
async def test_run_timeout_is_one_deadline(base_config):
    # Pipes closed but the process keeps running: the read and the wait
    # share a single timeout.
    config = replace(base_config, capture=replace(base_config.capture, command_timeout_s=0.2))
    runner = HostCommandRunner(config)
    proc = make_process(stdout=b"partial", exits=False)
    started = time.monotonic()
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
        assert await runner.run(["smartctl", "-a"]) is None
    assert time.monotonic() - started < 0.35
    proc.kill.assert_called_once()


@pytest.mark.asyncio
async def test_run_output_overflow_is_none(base_config):
    config = replace(base_config, capture=replace(base_config.capture, max_output_bytes=16))
    runner = HostCommandRunner(config)
    proc = make_process(stdout=b"x" * 64)
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
        assert await runner.run(["docker", "ps"]) is None
    proc.kill.assert_called_once()


@pytest.mark.asyncio
async def test_read_link_resolves_relative_target(tmp_path, base_config):
    host = tmp_path / "host"
    (host / "dev" / "disk" / "by-id").mkdir(parents=True)
    os.symlink("../../sdb", host / "dev" / "disk" / "by-id" / "ata-WDC_WD40EFRX_WD-1")
    runner = HostCommandRunner(with_paths(base_config, host_root=str(host)))

    assert await runner.read_link("/dev/disk/by-id/ata-WDC_WD40EFRX_WD-1") == "/dev/sdb"
    assert await runner.read_link("/dev/disk/by-id/missing") is None


@pytest.mark.asyncio
async def test_read_text_under_host_root(tmp_path, base_config):
    host = tmp_path / "host"
    (host / "etc").mkdir(parents=True)
    (host / "etc" / "hostname").write_text("nas\n")
    runner = HostCommandRunner(with_paths(base_config, host_root=str(host)))

    assert await runner.read_text("/etc/hostname") == "nas\n"
    assert await runner.read_text("/etc/missing") is None
    assert await read_text(tmp_path / "nothing") is None
