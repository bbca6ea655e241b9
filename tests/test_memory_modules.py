"""Tests for the dmidecode / lshw memory report parsers."""
from __future__ import annotations

import json

from hoststats.memory_modules import (
    DmidecodeMemoryParser,
    LshwJsonMemoryParser,
    LshwTextMemoryParser,
    is_absent_size,
)
from hoststats.models import MemoryModule

DMIDECODE_MEMORY = """\
# dmidecode 3.4
Getting SMBIOS data from sysfs.
SMBIOS 3.2.0 present.

Handle 0x0022, DMI type 16, 23 bytes
Physical Memory Array
\tLocation: System Board Or Motherboard
\tUse: System Memory
\tMaximum Capacity: 64 GB
\tNumber Of Devices: 2

Handle 0x0023, DMI type 17, 84 bytes
Memory Device
\tArray Handle: 0x0022
\tTotal Width: 64 bits
\tData Width: 64 bits
\tSize: 16 GB
\tForm Factor: SODIMM
\tLocator: ChannelA-DIMM0
\tBank Locator: BANK 0
\tType: DDR4
\tSpeed: 3200 MT/s
\tManufacturer: Kingston
\tSerial Number: 2A1B3C4D
\tAsset Tag: 9876543210
\tPart Number: KF432S20IB/16
\tRank: 2
\tConfigured Memory Speed: 2666 MT/s

Handle 0x0024, DMI type 17, 84 bytes
Memory Device
\tArray Handle: 0x0022
\tSize: No Module Installed
\tLocator: ChannelB-DIMM0
\tBank Locator: BANK 2
\tType: Unknown
\tSpeed: Unknown
\tManufacturer: Not Specified
\tSerial Number: Not Specified
\tPart Number: Not Specified

Handle 0x0025, DMI type 17, 40 bytes
Memory Device
\tSize: 8192 MB
\tLocator: DIMM_B1
\tSpeed: 2400 MT/s
\tManufacturer: Unknown
\tSerial Number: 00000000
\tPart Number: Not Specified
\tConfigured Clock Speed: Unknown

Handle 0x0026, DMI type 19, 31 bytes
Memory Array Mapped Address
\tStarting Address: 0x00000000000
"""

LSHW_JSON = [
    {
        "id": "memory",
        "class": "memory",
        "claimed": True,
        "description": "System Memory",
        "physid": "1f",
        "units": "bytes",
        "size": 17179869184,
        "children": [
            {
                "id": "bank:0",
                "class": "memory",
                "description": "SODIMM DDR4 Synchronous 3200 MHz (0.3 ns)",
                "product": "KF432S20IB/16",
                "vendor": "Kingston",
                "physid": "0",
                "serial": "2A1B3C4D",
                "slot": "ChannelA-DIMM0",
                "units": "bytes",
                "size": 17179869184,
                "width": 64,
                "clock": 3200000000,
            },
            {
                "id": "bank:1",
                "class": "memory",
                "description": "[empty]",
                "physid": "1",
                "slot": "ChannelB-DIMM0",
            },
        ],
    },
    {"id": "cache:0", "class": "memory", "size": 196608},
]

LSHW_TEXT = """\
  *-firmware
       description: BIOS
       size: 64KiB
  *-memory
       description: System Memory
       physical id: 1f
       slot: System board or motherboard
       size: 16GiB
     *-bank:0
          description: SODIMM DDR4 Synchronous 3200 MHz (0.3 ns)
          product: KF432S20IB/16
          vendor: Kingston
          physical id: 0
          serial: 2A1B3C4D
          slot: ChannelA-DIMM0
          size: 16GiB
          width: 64 bits
          clock: 3200MHz (0.3ns)
     *-bank:1
          description: [empty]
          physical id: 1
          slot: ChannelB-DIMM0
  *-cache:0
       size: 192KiB
"""


def test_absent_sizes():
    for size in [None, "", "No Module Installed", "Not Installed", "0", "0 MB", "Unknown"]:
        assert is_absent_size(size)
    assert not is_absent_size("16 GB")


def test_dmidecode_parser():
    modules = DmidecodeMemoryParser().parse(DMIDECODE_MEMORY)
    assert modules == [
        MemoryModule(
            slot="BANK 0 / ChannelA-DIMM0",
            size_label="16 GB",
            speed_label="2666 MT/s",
            manufacturer="Kingston",
            part_number="KF432S20IB/16",
            serial_number="2A1B3C4D",
        ),
        MemoryModule(
            slot="DIMM_B1",
            size_label="8192 MB",
            speed_label="2400 MT/s",
            manufacturer=None,
            part_number=None,
            serial_number="00000000",
        ),
    ]


def test_dmidecode_parser_without_devices():
    assert DmidecodeMemoryParser().parse("# dmidecode 3.4\n# No SMBIOS nor DMI entry point found, sorry.\n") == []


def test_lshw_json_parser():
    modules = LshwJsonMemoryParser().parse(json.dumps(LSHW_JSON))
    assert modules == [
        MemoryModule(
            slot="ChannelA-DIMM0",
            size_label="17179869184",
            speed_label="3200 MHz",
            manufacturer="Kingston",
            part_number="KF432S20IB/16",
            serial_number="2A1B3C4D",
        )
    ]


def test_lshw_json_parser_accepts_unwrapped_objects():
    text = ",\n".join(json.dumps(node) for node in LSHW_JSON) + ",\n"
    assert len(LshwJsonMemoryParser().parse(text)) == 1


def test_lshw_json_parser_rejects_garbage():
    assert LshwJsonMemoryParser().parse("") == []
    assert LshwJsonMemoryParser().parse("{{{") == []


def test_lshw_text_parser():
    modules = LshwTextMemoryParser().parse(LSHW_TEXT)
    assert modules == [
        MemoryModule(
            slot="ChannelA-DIMM0",
            size_label="16GiB",
            speed_label="3200MHz",
            manufacturer="Kingston",
            part_number="KF432S20IB/16",
            serial_number="2A1B3C4D",
        )
    ]


def test_parsers_do_not_share_vocabulary():
    # Each tool's report means nothing to the other tool's parser.
    assert LshwTextMemoryParser().parse(DMIDECODE_MEMORY) == []
    assert DmidecodeMemoryParser().parse(LSHW_TEXT) == []
