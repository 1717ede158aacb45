"""CRC-16/MODBUS checksum (polynomial 0x8005 reflected, initial value 0xFFFF)."""

from __future__ import annotations

_POLYNOMIAL = 0xA001
_INITIAL = 0xFFFF


def _build_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ _POLYNOMIAL if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_TABLE = _build_table()


def modbus_crc(data: bytes | bytearray | memoryview) -> int:
    """Return the CRC-16/MODBUS of ``data`` as an integer."""
    crc = _INITIAL
    for byte in bytes(data):
        crc = (crc >> 8) ^ _TABLE[(crc ^ byte) & 0xFF]
    return crc


def append_crc(frame: bytes | bytearray) -> bytes:
    """Return ``frame`` followed by its CRC, low byte first as on the wire."""
    return bytes(frame) + modbus_crc(frame).to_bytes(2, "little")


def check_crc(frame: bytes | bytearray) -> bool:
    """Return True if ``frame`` ends with a valid CRC over the rest of it."""
    return len(frame) >= 2 and modbus_crc(frame) == 0