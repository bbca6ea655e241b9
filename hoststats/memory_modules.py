"""Parsers turning vendor memory reports into :class:`MemoryModule` lists.

Each parser understands exactly one tool's vocabulary and never runs a
process, so they can be exercised with captured output alone.
"""
from __future__ import annotations

import json
import re
from typing import Any, Iterator, Protocol

from hoststats.models import MemoryModule

PLACEHOLDERS = frozenset(
    {
        "",
        "unknown",
        "not specified",
        "not provided",
        "none",
        "no dimm",
        "[empty]",
        "to be filled by o.e.m.",
        "manufacturer00",
        "sernum00",
        "partnum00",
    }
)

ABSENT_SIZES = frozenset({"no module installed", "not installed", "unknown", "none"})

_KEY_VALUE = re.compile(r"^\s*([^:]+?)\s*:\s*(.*?)\s*$")
_ZERO_SIZE = re.compile(r"^0+(\s*[a-zA-Z]*)?$")


def clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value.lower() in PLACEHOLDERS:
        return None
    return value


def is_absent_size(size: str | None) -> bool:
    if size is None:
        return True
    size = size.strip()
    return not size or size.lower() in ABSENT_SIZES or bool(_ZERO_SIZE.match(size))


class MemoryModuleParser(Protocol):
    def parse(self, text: str) -> list[MemoryModule]: ...


class DmidecodeMemoryParser:
    """``dmidecode -t memory``: one ``Memory Device`` block per slot."""

    def parse(self, text: str) -> list[MemoryModule]:
        modules: list[MemoryModule] = []
        for index, fields in enumerate(self._records(text)):
            size = fields.get("Size")
            if is_absent_size(size):
                continue
            modules.append(
                MemoryModule(
                    slot=self._slot(fields, index),
                    size_label=size.strip(),
                    speed_label=clean(
                        fields.get("Configured Memory Speed")
                        or fields.get("Configured Clock Speed")
                    )
                    or clean(fields.get("Speed")),
                    manufacturer=clean(fields.get("Manufacturer")),
                    part_number=clean(fields.get("Part Number")),
                    serial_number=clean(fields.get("Serial Number")),
                )
            )
        return modules

    @staticmethod
    def _records(text: str) -> Iterator[dict[str, str]]:
        current: dict[str, str] | None = None
        for line in text.splitlines():
            stripped = line.strip()
            if stripped == "Memory Device":
                if current is not None:
                    yield current
                current = {}
                continue
            if current is None:
                continue
            if line.startswith("Handle ") or (stripped and not line[:1].isspace()):
                yield current
                current = None
                continue
            match = _KEY_VALUE.match(line)
            if match:
                current.setdefault(match.group(1), match.group(2))
        if current is not None:
            yield current

    @staticmethod
    def _slot(fields: dict[str, str], index: int) -> str:
        locator = clean(fields.get("Locator"))
        bank = clean(fields.get("Bank Locator"))
        if locator and bank and bank != locator:
            return f"{bank} / {locator}"
        return locator or bank or f"Slot {index}"


class LshwJsonMemoryParser:
    """``lshw -json -class memory``: ``bank:N`` nodes anywhere in the tree."""

    def parse(self, text: str) -> list[MemoryModule]:
        data = self._load(text)
        if data is None:
            return []
        modules: list[MemoryModule] = []
        for node in self._walk(data):
            node_id = str(node.get("id", ""))
            size = node.get("size")
            if not node_id.startswith("bank") or isinstance(size, bool):
                continue
            if not isinstance(size, int) or size <= 0:
                continue
            clock = node.get("clock")
            modules.append(
                MemoryModule(
                    slot=clean(node.get("slot")) or f"Slot {node.get('physid', len(modules))}",
                    size_label=str(size),
                    speed_label=f"{clock // 1_000_000} MHz"
                    if isinstance(clock, int) and clock > 0
                    else None,
                    manufacturer=clean(node.get("vendor")),
                    part_number=clean(node.get("product")),
                    serial_number=clean(node.get("serial")),
                )
            )
        return modules

    @staticmethod
    def _load(text: str) -> Any:
        text = text.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
        # Older lshw prints comma separated objects without the enclosing array.
        try:
            return json.loads(f"[{text.rstrip(',')}]")
        except json.JSONDecodeError:
            return None

    def _walk(self, node: Any) -> Iterator[dict[str, Any]]:
        if isinstance(node, list):
            for item in node:
                yield from self._walk(item)
        elif isinstance(node, dict):
            yield node
            yield from self._walk(node.get("children") or [])


class LshwTextMemoryParser:
    """Plain ``lshw -class memory``: ``*-bank:N`` sections of indented keys."""

    _SECTION = re.compile(r"^\s*\*-(\S+)")

    def parse(self, text: str) -> list[MemoryModule]:
        modules: list[MemoryModule] = []
        for index, fields in enumerate(self._banks(text)):
            size = fields.get("size")
            if is_absent_size(size):
                continue
            clock = fields.get("clock")
            modules.append(
                MemoryModule(
                    slot=clean(fields.get("slot")) or f"Slot {index}",
                    size_label=size.strip(),
                    # "2666MHz (0.4ns)" -> "2666MHz"
                    speed_label=clean(clock.split("(", 1)[0]) if clock else None,
                    manufacturer=clean(fields.get("vendor")),
                    part_number=clean(fields.get("product")),
                    serial_number=clean(fields.get("serial")),
                )
            )
        return modules

    def _banks(self, text: str) -> Iterator[dict[str, str]]:
        current: dict[str, str] | None = None
        for line in text.splitlines():
            section = self._SECTION.match(line)
            if section:
                if current is not None:
                    yield current
                current = {} if section.group(1).startswith("bank") else None
                continue
            if current is None:
                continue
            match = _KEY_VALUE.match(line)
            if match:
                current.setdefault(match.group(1), match.group(2))
        if current is not None:
            yield current
