from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Sequence

from hoststats.config import AppConfig
from hoststats.logging_utils import TRACE_LEVEL

SAFE_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Tool output is parsed with fixed English keys and dot decimals.
COMMAND_ENV = {
    "LC_ALL": "C",
    "LANG": "C",
    "LANGUAGE": "C",
    "PATH": SAFE_PATH,
}

READ_CHUNK = 64 * 1024


async def read_text(path: str | Path) -> str | None:
    """Read a (pseudo-)file off the event loop, or None if it can't be read."""
    try:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8", errors="replace")
    except OSError:
        return None


class HostCommandRunner:
    """Runs host tools with the mounted host filesystem as execution root.

    ``run`` never raises: a missing binary, a timeout, an oversized output or
    a failed exit without output all come back as ``None``.
    """

    def __init__(self, config: AppConfig) -> None:
        self.host_root = config.paths.host_root or "/"
        self.chroot_path = config.tools.chroot_path
        self.timeout_s = config.capture.command_timeout_s
        self.max_output_bytes = config.capture.max_output_bytes
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def chrooted(self) -> bool:
        return os.path.normpath(self.host_root) != "/"

    def command_line(self, args: Sequence[str]) -> list[str]:
        if self.chrooted:
            return [self.chroot_path, self.host_root, *args]
        return list(args)

    def host_path(self, path: str) -> str:
        """Map an absolute path in the host namespace to our view of it."""
        if not self.chrooted:
            return path
        return os.path.join(self.host_root, path.lstrip("/"))

    async def read_text(self, path: str) -> str | None:
        return await read_text(self.host_path(path))

    async def read_link(self, path: str) -> str | None:
        """Resolve one symlink level, returning the target as a host path."""
        try:
            target = await asyncio.to_thread(os.readlink, self.host_path(path))
        except OSError:
            self.logger.debug("Cannot read link %s.", path)
            return None
        if not os.path.isabs(target):
            target = os.path.join(os.path.dirname(path), target)
        return os.path.normpath(target)

    async def run(self, args: Sequence[str]) -> str | None:
        command = self.command_line(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=COMMAND_ENV,
            )
        except FileNotFoundError:
            self.logger.debug("Command not found: %s", command[0])
            return None
        except OSError as exc:
            self.logger.debug("Cannot start %s: %s", command[0], exc)
            return None

        try:
            stdout, stderr, returncode = await asyncio.wait_for(
                self._communicate(proc), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            self.logger.debug(
                "Command timed out after %ss: %s", self.timeout_s, " ".join(command)
            )
            await self._kill(proc)
            return None

        if stdout is None:
            self.logger.debug(
                "Command output exceeded %s bytes: %s",
                self.max_output_bytes,
                " ".join(command),
            )
            return None

        out_text = stdout.decode("utf-8", errors="replace")
        if returncode != 0:
            self.logger.debug("Command failed (%s): %s", returncode, " ".join(command))
            if stderr:
                self.logger.log(
                    TRACE_LEVEL, "stderr: %s", stderr.decode("utf-8", errors="replace").strip()
                )
            if not out_text:
                return None
        if out_text:
            self.logger.log(TRACE_LEVEL, "stdout: %s", out_text.strip())
        return out_text

    async def _communicate(
        self, proc: asyncio.subprocess.Process
    ) -> tuple[bytes | None, bytes | None, int]:
        stdout, stderr = await asyncio.gather(
            self._read_bounded(proc, proc.stdout),
            self._read_bounded(proc, proc.stderr),
        )
        return stdout, stderr, await proc.wait()

    async def _read_bounded(
        self, proc: asyncio.subprocess.Process, stream: asyncio.StreamReader | None
    ) -> bytes | None:
        if stream is None:
            return b""
        chunks: list[bytes] = []
        size = 0
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return b"".join(chunks)
            size += len(chunk)
            if size > self.max_output_bytes:
                await self._kill(proc)
                return None
            chunks.append(chunk)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=1)
        except asyncio.TimeoutError:
            self.logger.debug("Process %s did not exit after kill.", proc.pid)
