"""Modbus RTU master over an RS-485 serial line."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import serial

from farmbox.crc import append_crc, check_crc

ADDRESS_DEFAULT = 100
BAUDRATE_DEFAULT = 9600

READ_HOLDING_REGISTERS = 0x03
READ_INPUT_REGISTERS = 0x04
WRITE_SINGLE_REGISTER = 0x06
WRITE_MULTIPLE_REGISTERS = 0x10

MAX_READ_COUNT = 125
MAX_WRITE_COUNT = 123
WRITE_RESPONSE_LENGTH = 8


class ModbusError(Exception):
    """A Modbus transaction failed."""


class ModbusTimeoutError(ModbusError):
    """The device did not answer with a complete frame in time."""


class ModbusCRCError(ModbusError):
    """The device answered with a frame whose checksum is wrong."""


def _check_u8(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be in 0..255, got {value}")


def _check_u16(name: str, value: int) -> None:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} must be in 0..65535, got {value}")


def build_read_request(address: int, function: int, register: int, count: int) -> bytes:
    """Build a read request frame (function 0x03 or 0x04) with its CRC."""
    _check_u8("address", address)
    _check_u8("function", function)
    _check_u16("register", register)
    if not 1 <= count <= MAX_READ_COUNT:
        raise ValueError(f"count must be in 1..{MAX_READ_COUNT}, got {count}")
    body = bytes([address, function]) + register.to_bytes(2, "big") + count.to_bytes(2, "big")
    return append_crc(body)


def build_write_single_request(address: int, register: int, value: int) -> bytes:
    """Build a Write Single Register (0x06) frame with its CRC."""
    _check_u8("address", address)
    _check_u16("register", register)
    _check_u16("value", value)
    body = bytes([address, WRITE_SINGLE_REGISTER]) + register.to_bytes(2, "big") + value.to_bytes(2, "big")
    return append_crc(body)


def build_write_multiple_request(address: int, register: int, values: Sequence[int]) -> bytes:
    """Build a Write Multiple Registers (0x10) frame with its CRC."""
    _check_u8("address", address)
    _check_u16("register", register)
    count = len(values)
    if not 1 <= count <= MAX_WRITE_COUNT:
        raise ValueError(f"number of values must be in 1..{MAX_WRITE_COUNT}, got {count}")
    for value in values:
        _check_u16("value", value)
    body = bytearray([address, WRITE_MULTIPLE_REGISTERS])
    body += register.to_bytes(2, "big")
    body += count.to_bytes(2, "big")
    body.append(count * 2)
    for value in values:
        body += value.to_bytes(2, "big")
    return append_crc(body)


def parse_read_response(frame: bytes, count: int) -> list[int]:
    """Return the register values carried by a read response frame.

    Raises ModbusTimeoutError if the frame is not of the expected length and
    ModbusCRCError if its checksum is wrong.
    """
    expected = 5 + count * 2
    if len(frame) != expected:
        raise ModbusTimeoutError(f"expected {expected} bytes, received {len(frame)}")
    if not check_crc(frame):
        raise ModbusCRCError("CRC error in read response")
    data = frame[3 : 3 + count * 2]
    return [int.from_bytes(data[i : i + 2], "big") for i in range(0, len(data), 2)]


def open_serial(port_name: str, baudrate: int = BAUDRATE_DEFAULT) -> Any:
    """Open a serial port (or a pyserial URL) for use with RS485."""
    return serial.serial_for_url(port_name, baudrate=baudrate, timeout=0.05)


class RS485:
    """Modbus RTU master talking to one slave address over a serial port.

    ``port`` is any object with ``write``, ``read`` and ``reset_input_buffer``,
    such as a pyserial ``Serial``.
    """

    def __init__(
        self,
        port: Any,
        address: int = ADDRESS_DEFAULT,
        timeout: float = 2.0,
        turnaround: float = 0.05,
    ) -> None:
        _check_u8("address", address)
        self.port = port
        self.address = address
        self.timeout = timeout
        self.turnaround = turnaround

    def read_holding_registers(self, register: int, count: int = 1) -> list[int]:
        """Read ``count`` holding registers starting at ``register``."""
        return self._read(READ_HOLDING_REGISTERS, register, count)

    def read_input_registers(self, register: int, count: int = 1) -> list[int]:
        """Read ``count`` input registers starting at ``register``."""
        return self._read(READ_INPUT_REGISTERS, register, count)

    def write_single_register(self, register: int, value: int) -> None:
        """Write one holding register."""
        self._write(build_write_single_request(self.address, register, value))

    def write_multiple_registers(self, register: int, values: Sequence[int]) -> None:
        """Write consecutive holding registers starting at ``register``."""
        self._write(build_write_multiple_request(self.address, register, values))

    def _read(self, function: int, register: int, count: int) -> list[int]:
        request = build_read_request(self.address, function, register, count)
        self._send(request)
        frame = self._receive(5 + count * 2)
        return parse_read_response(frame, count)

    def _write(self, request: bytes) -> None:
        self._send(request)
        response = self._receive(WRITE_RESPONSE_LENGTH)
        if len(response) != WRITE_RESPONSE_LENGTH:
            raise ModbusTimeoutError(
                f"expected {WRITE_RESPONSE_LENGTH} bytes, received {len(response)}"
            )
        if not check_crc(response):
            raise ModbusCRCError("CRC error in write response")

    def _send(self, frame: bytes) -> None:
        # Drop any junk left over from earlier exchanges.
        self.port.reset_input_buffer()
        self.port.write(frame)
        if self.turnaround > 0:
            time.sleep(self.turnaround)

    def _receive(self, length: int) -> bytes:
        received = bytearray()
        deadline = time.monotonic() + self.timeout
        while len(received) < length:
            chunk = self.port.read(length - len(received))
            if chunk:
                received += chunk
            elif time.monotonic() >= deadline:
                break
        return bytes(received)