from __future__ import annotations

import json
import logging

from hoststats.models import ContainerStatus
from hoststats.runner import HostCommandRunner


def parse_container_line(line: str) -> ContainerStatus | None:
    try:
        row = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(row, dict):
        return None
    name = row.get("Names")
    if not isinstance(name, str) or not name.strip():
        return None
    status = row.get("Status")
    image = row.get("Image")
    state = row.get("State")
    return ContainerStatus(
        name=name.strip(),
        status_text=status.strip() if isinstance(status, str) else "",
        image=image if isinstance(image, str) and image else None,
        state=state if isinstance(state, str) and state else None,
    )


class ContainerStatusReader:
    def __init__(self, runner: HostCommandRunner, docker_path: str = "docker") -> None:
        self.runner = runner
        self.docker_path = docker_path
        self.logger = logging.getLogger(self.__class__.__name__)

    async def read(self) -> list[ContainerStatus]:
        output = await self.runner.run([self.docker_path, "ps", "-a", "--format", "{{json .}}"])
        if output is None:
            self.logger.debug("Container runtime not available.")
            return []
        containers: list[ContainerStatus] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            container = parse_container_line(line)
            if container is None:
                self.logger.debug("Skipping malformed container line: %s", line)
                continue
            containers.append(container)
        return containers
